"""Base source interface for catalog product pages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

# Upstream payloads are loosely typed; every field is optional.
RawRecord = dict[str, Any]


@dataclass
class Pagination:
    """Pagination block returned alongside a page of records."""

    page_count: Optional[int] = None
    total_items: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Pagination"]:
        if not isinstance(payload, dict):
            return None

        def _int(value):
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        return cls(
            page_count=_int(payload.get("pageCount")),
            total_items=_int(payload.get("totalItemCount")),
        )


@dataclass
class CatalogPage:
    """One page of raw product records."""

    page: int
    records: list[RawRecord]
    pagination: Optional[Pagination] = None
    success: bool = True
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_empty(self) -> bool:
        return not self.records


class BaseSource(ABC):
    """Abstract base class for paginated product sources."""

    @abstractmethod
    async def fetch(self, page: int) -> CatalogPage:
        """
        Fetch one page of raw product records.

        Args:
            page: 1-based page number

        Returns:
            CatalogPage with the records and pagination info

        Raises:
            FetchError: If the page could not be fetched after retries
        """
        pass

    async def close(self):
        """Release any network resources."""
        pass
