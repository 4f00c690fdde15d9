"""Resume checkpoint for long ingest runs."""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class Checkpoint:
    last_successful_page: int
    stats: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def next_page(self) -> int:
        return self.last_successful_page + 1


class CheckpointStore:
    """
    JSON file holding the last page that completed successfully.

    Reading or writing problems are logged and never interrupt a run.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Optional[Checkpoint]:
        if not self.path.exists():
            logger.info("No previous checkpoint found, starting from the configured page")
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            checkpoint = Checkpoint(
                last_successful_page=int(data["last_successful_page"]),
                stats=dict(data.get("stats") or {}),
                timestamp=str(data.get("timestamp") or ""),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Error loading checkpoint {self.path}: {e}")
            return None

        logger.info(
            f"Checkpoint loaded: resuming after page {checkpoint.last_successful_page} "
            f"(saved {checkpoint.timestamp})"
        )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(asdict(checkpoint), indent=2, default=str), encoding="utf-8")
        except OSError as e:
            logger.error(f"Error saving checkpoint {self.path}: {e}")
            return False
        logger.info(f"Checkpoint saved: page {checkpoint.last_successful_page}")
        return True
