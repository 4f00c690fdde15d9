"""Bulk document import with per-document error analysis."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from product_ingest import metrics
from product_ingest.config import settings
from product_ingest.errors import IndexImportError

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200
UNKNOWN_ERROR = "Unknown error"


class DocumentImporter(Protocol):
    async def import_documents(self, documents: list[dict], action: str = "upsert") -> list[dict[str, Any]]:
        ...


@dataclass
class DocumentError:
    """One document the index refused."""

    product_id: Any
    title: Optional[str]
    objectID: Optional[str]
    error_message: str
    error_code: Optional[int] = None
    raw_document_excerpt: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "title": self.title,
            "objectID": self.objectID,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "raw_document_excerpt": self.raw_document_excerpt,
        }


@dataclass
class ImportResult:
    indexed: int = 0
    failed: int = 0
    errors: list[DocumentError] = field(default_factory=list)

    def merge(self, other: "ImportResult"):
        self.indexed += other.indexed
        self.failed += other.failed
        self.errors.extend(other.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexed": self.indexed,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
        }


class ErrorHistogram:
    """
    Count of failed documents per error message.

    Keeps at most ``max_examples`` example records per message so the report
    stays small even when a schema problem rejects every document.
    """

    def __init__(self, max_examples: int = 3):
        self.max_examples = max_examples
        self._buckets: dict[str, dict[str, Any]] = {}

    def add(self, error: DocumentError):
        bucket = self._buckets.setdefault(error.error_message, {"count": 0, "examples": []})
        bucket["count"] += 1
        if len(bucket["examples"]) < self.max_examples:
            bucket["examples"].append(error.to_dict())

    def counts(self) -> dict[str, int]:
        return {message: bucket["count"] for message, bucket in self._buckets.items()}

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            message: {"count": bucket["count"], "examples": list(bucket["examples"])}
            for message, bucket in self._buckets.items()
        }

    def __len__(self) -> int:
        return len(self._buckets)


def _excerpt(result: dict, document: dict) -> str:
    raw = result.get("document")
    if not isinstance(raw, str):
        raw = json.dumps(document, ensure_ascii=False, default=str)
    return raw[:EXCERPT_LENGTH]


def _document_error(document: dict, message: str, code: Optional[int] = None, excerpt: Optional[str] = None) -> DocumentError:
    return DocumentError(
        product_id=document.get("product_id"),
        title=document.get("title"),
        objectID=document.get("objectID"),
        error_message=message,
        error_code=code,
        raw_document_excerpt=excerpt,
    )


class IndexImportEngine:
    """
    Submit document batches to the search index and classify the outcome.

    The ``error_analysis`` histogram accumulates across every batch imported
    through the same engine, which is what the run report exposes.
    """

    def __init__(
        self,
        client: DocumentImporter,
        batch_size: Optional[int] = None,
        max_examples: Optional[int] = None,
        batch_pause: Optional[float] = None,
    ):
        self.client = client
        self.batch_size = batch_size or settings.index_batch_size
        self.batch_pause = settings.index_batch_pause_seconds if batch_pause is None else batch_pause
        self.error_analysis = ErrorHistogram(
            max_examples if max_examples is not None else settings.error_examples_per_bucket
        )
        self.batches = 0

    def _classify(self, documents: list[dict], results: list[dict]) -> ImportResult:
        outcome = ImportResult()
        for index, document in enumerate(documents):
            result = results[index] if index < len(results) else None
            if isinstance(result, dict) and result.get("success") is True:
                outcome.indexed += 1
                continue

            if isinstance(result, dict):
                error = _document_error(
                    document,
                    str(result.get("error") or UNKNOWN_ERROR),
                    code=result.get("code"),
                    excerpt=_excerpt(result, document),
                )
            else:
                error = _document_error(document, "No import result returned", excerpt=_excerpt({}, document))

            outcome.failed += 1
            outcome.errors.append(error)
            self.error_analysis.add(error)
            logger.warning(
                f"Document {error.objectID} ({error.product_id}) rejected: {error.error_message}"
            )
        return outcome

    async def import_documents(self, documents: list[dict]) -> ImportResult:
        """
        Import one batch with ``action=upsert``.

        Never raises for index-side failures: a failed request is classified
        through its ``import_results`` when present, else every document in
        the batch counts as failed.
        """
        if not documents:
            return ImportResult()

        self.batches += 1
        try:
            results = await self.client.import_documents(documents, action="upsert")
            outcome = self._classify(documents, results)
        except IndexImportError as e:
            if e.import_results:
                logger.error(f"Import request failed, classifying {len(e.import_results)} returned results: {e}")
                outcome = self._classify(documents, e.import_results)
            else:
                logger.error(f"Import request failed for batch of {len(documents)}: {e}")
                outcome = ImportResult()
                for document in documents:
                    error = _document_error(document, str(e), excerpt=_excerpt({}, document))
                    outcome.failed += 1
                    outcome.errors.append(error)
                    self.error_analysis.add(error)

        metrics.record_index_batch(outcome.indexed, outcome.failed)
        logger.info(f"Index batch: {outcome.indexed} indexed, {outcome.failed} failed")
        return outcome

    async def import_all(self, documents: list[dict]) -> ImportResult:
        """Split ``documents`` into batches and import them in order."""
        total = ImportResult()
        for start in range(0, len(documents), self.batch_size):
            if start and self.batch_pause:
                await asyncio.sleep(self.batch_pause)
            total.merge(await self.import_documents(documents[start:start + self.batch_size]))
        return total
