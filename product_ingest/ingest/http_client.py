"""HTTP request policy shared by the catalog and search index clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from product_ingest.config import settings


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and linear backoff for one remote endpoint."""

    name: str
    max_attempts: int = 3
    retry_delay: float = 1.0
    timeout: Optional[httpx.Timeout] = None  # 30s when omitted

    def __post_init__(self):
        if self.timeout is None:
            object.__setattr__(self, 'timeout', httpx.Timeout(30.0))
        if self.max_attempts < 1:
            object.__setattr__(self, 'max_attempts', 1)

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.retry_delay * attempt


def catalog_policy() -> RetryPolicy:
    """Policy for the upstream catalog API built from settings."""
    return RetryPolicy(
        name="catalog",
        max_attempts=settings.api_max_retries,
        retry_delay=settings.api_retry_delay_seconds,
        timeout=httpx.Timeout(settings.api_timeout_seconds),
    )


def default_headers(user_agent: str | None = None) -> dict[str, str]:
    """Headers sent on every JSON API request."""
    return {
        "User-Agent": user_agent or settings.api_user_agent,
        "Accept": "application/json",
    }

