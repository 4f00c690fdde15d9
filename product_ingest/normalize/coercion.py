"""Per-field coercions for loosely typed upstream payloads.

Every helper takes ``(raw, default)`` and returns a value of the target type.
None of them raise: a value of the wrong shape falls back to the default.
"""

import math
from typing import Any, Optional


def coalesce(*values: Any) -> Any:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def as_dict(value: Any) -> dict:
    """Objects pass through, anything else becomes ``{}``."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list:
    """Arrays pass through, anything else becomes ``[]``."""
    return value if isinstance(value, list) else []


def as_str(value: Any, default: Optional[str] = None) -> Optional[str]:
    """Non-empty string form of a scalar, else ``default``."""
    if value is None or isinstance(value, (dict, list)):
        return default
    if isinstance(value, bool):
        value = "true" if value else "false"
    text = value if isinstance(value, str) else str(value)
    return text if text != "" else default


def as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Integer form of numbers and numeric strings, else ``default``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else default
        if isinstance(value, str):
            value = value.strip()
            return int(float(value)) if "." in value or "e" in value.lower() else int(value)
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def as_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Finite float form of numbers and numeric strings, else ``default``."""
    if value is None or isinstance(value, (dict, list)):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return result if math.isfinite(result) else default


def as_bool(value: Any) -> bool:
    """Truthiness, as the upstream payload uses it."""
    return bool(value)


def as_flag(value: Any) -> int:
    """Truthiness as a 0/1 column value."""
    return 1 if value else 0


def non_negative(value: Optional[float]) -> float:
    if value is None or value < 0:
        return 0
    return value


def truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]
