"""Async HTTP client for the Typesense search index."""

import json
import logging
from typing import Any, Optional

import httpx

from product_ingest.config import settings
from product_ingest.errors import IndexImportError, SearchIndexError
from product_ingest.search.schema import collection_schema

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"
INVALID_JSON_LINE = "Invalid JSON line"


def parse_import_results(body: str) -> list[dict[str, Any]]:
    """
    Parse the JSONL body returned by a documents import.

    Each non-blank line becomes one result; lines that are not valid JSON
    objects are reported as failed results so positions stay aligned with
    the submitted documents.
    """
    results = []
    for line in body.splitlines():
        if not line.strip():
            continue
        try:
            parsed = json.loads(line)
        except ValueError:
            parsed = None
        if not isinstance(parsed, dict):
            parsed = {"success": False, "error": INVALID_JSON_LINE}
        results.append(parsed)
    return results


def error_envelope_message(response: httpx.Response) -> Optional[str]:
    """
    Message of a whole-request error body such as ``{"message": "Bad JSON."}``.

    Returns None when the body is not a single JSON object, or when it is a
    per-document result line (it carries ``success``).
    """
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or "success" in body:
        return None
    return str(body.get("message") or body)


class SearchIndexClient:
    """
    Minimal REST client for one Typesense collection.

    Covers what the ingest pipeline needs: health check, collection
    bootstrap and bulk document import.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        collection: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.typesense_url).rstrip("/")
        self.api_key = api_key or settings.typesense_api_key
        self.collection = collection or settings.typesense_collection
        self.timeout = httpx.Timeout(timeout or settings.typesense_timeout_seconds)
        self._http_client = client
        self._owns_client = client is None
        if client is not None:
            client.headers[API_KEY_HEADER] = self.api_key

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={API_KEY_HEADER: self.api_key},
            )
        return self._http_client

    async def close(self):
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def health(self) -> bool:
        """Return True when the server reports ``{"ok": true}``."""
        client = await self._get_client()
        try:
            response = await client.get(self._url("/health"))
            response.raise_for_status()
            return response.json().get("ok") is True
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(f"Search index health check failed: {e}")
            return False

    async def get_collection(self) -> Optional[dict[str, Any]]:
        """Fetch the collection definition, or None when it does not exist."""
        client = await self._get_client()
        try:
            response = await client.get(
                self._url(f"/collections/{self.collection}")
            )
        except httpx.HTTPError as e:
            raise SearchIndexError(f"Error retrieving collection '{self.collection}': {e}") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise SearchIndexError(
                f"Error retrieving collection '{self.collection}': HTTP {response.status_code}"
            )
        return response.json()

    async def create_collection(self) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(
                self._url("/collections"),
                json=collection_schema(self.collection),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchIndexError(f"Error creating collection '{self.collection}': {e}") from e

        logger.info(f"Collection '{self.collection}' created")
        return response.json()

    async def ensure_collection(self) -> dict[str, Any]:
        """Return the collection, creating it from the product schema on 404."""
        existing = await self.get_collection()
        if existing is not None:
            logger.info(f"Collection '{self.collection}' already exists")
            return existing
        return await self.create_collection()

    async def import_documents(self, documents: list[dict], action: str = "upsert") -> list[dict[str, Any]]:
        """
        Import a batch of documents in one request.

        Returns:
            Per-document results, in input order

        Raises:
            IndexImportError: If the request fails. ``import_results`` is set
                only when the server still returned per-document lines; a
                whole-request error body leaves it None and carries the
                server message instead.
        """
        client = await self._get_client()
        body = "\n".join(json.dumps(doc, ensure_ascii=False, default=str) for doc in documents)

        try:
            response = await client.post(
                self._url(f"/collections/{self.collection}/documents/import"),
                params={"action": action},
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/jsonl"},
            )
        except httpx.HTTPError as e:
            raise IndexImportError(f"Import request failed: {e}") from e

        results = parse_import_results(response.text)
        if not response.is_error:
            return results

        status = response.status_code
        message = error_envelope_message(response)
        if message is None and any(r.get("error") != INVALID_JSON_LINE for r in results):
            raise IndexImportError(f"Import failed with HTTP {status}", import_results=results)

        # The request failed as a whole; every document in it shares the message
        message = message or response.text.strip()[:200] or response.reason_phrase
        raise IndexImportError(f"Import failed with HTTP {status}: {message}")
