"""Exception types shared across the ingest pipeline."""

from typing import Any, Optional


class IngestError(Exception):
    """Base class for pipeline errors."""

    pass


class UpstreamResponseError(IngestError):
    """Raised when the catalog API answers with an error envelope."""

    pass


class FetchError(IngestError):
    """Raised when a catalog page could not be fetched after all retries."""

    def __init__(self, page: int, attempts: int, cause: Optional[BaseException] = None):
        message = f"Failed to fetch page {page} after {attempts} attempts"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.page = page
        self.attempts = attempts
        self.cause = cause


class TransformError(IngestError):
    """Raised when a raw record cannot be projected or normalized."""

    def __init__(self, record_id: Any, message: str):
        super().__init__(f"Error transforming product {record_id}: {message}")
        self.record_id = record_id


class ChunkWriteError(IngestError):
    """Raised when an upsert chunk fails at its transaction boundary."""

    def __init__(self, size: int, cause: BaseException):
        super().__init__(f"Chunk of {size} products rolled back: {cause}")
        self.size = size
        self.cause = cause


class SearchIndexError(IngestError):
    """Raised when the search index is unreachable or rejects an admin call."""

    pass


class IndexImportError(SearchIndexError):
    """
    Raised when a documents import request fails as a whole.

    ``import_results`` holds the per-document results when the server still
    returned them alongside the failure status.
    """

    def __init__(self, message: str, import_results: Optional[list[dict]] = None):
        super().__init__(message)
        self.import_results = import_results


class FatalPipelineError(IngestError):
    """Raised when the driver must stop with a non-zero exit."""

    pass
