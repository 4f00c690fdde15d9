"""Paginated catalog API client with linear-backoff retry."""

import asyncio
import logging
from typing import Optional

import httpx

from product_ingest import metrics
from product_ingest.config import settings
from product_ingest.errors import FetchError, UpstreamResponseError
from product_ingest.ingest.base import BaseSource, CatalogPage, Pagination
from product_ingest.ingest.http_client import RetryPolicy, catalog_policy, default_headers

logger = logging.getLogger(__name__)


class CatalogSourceClient(BaseSource):
    """
    Fetches pages of raw product records from the upstream catalog API.

    Requests look like ``GET {base_url}?page_size=N&page=P``. A response only
    counts as successful when its envelope carries ``metadata.is_error == false``.
    The client holds no per-page state, so fetching the same page twice is safe.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize catalog client.

        Args:
            base_url: Catalog endpoint (defaults to config)
            page_size: Records per page (defaults to config)
            policy: Retry policy (defaults to config)
            client: Optional pre-built httpx client, mostly for tests
        """
        self.base_url = base_url or settings.catalog_api_url
        self.page_size = page_size or settings.api_page_size
        self.policy = policy or catalog_policy()
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.policy.timeout,
                follow_redirects=True,
                headers=default_headers(),
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def _fetch_once(self, client: httpx.AsyncClient, page: int) -> CatalogPage:
        response = await client.get(
            self.base_url,
            params={"page_size": self.page_size, "page": page},
            headers=default_headers(),
            timeout=self.policy.timeout,
        )
        response.raise_for_status()

        body = response.json()
        metadata = body.get("metadata") if isinstance(body, dict) else None
        if not isinstance(metadata, dict) or metadata.get("is_error") is not False:
            message = metadata.get("message") if isinstance(metadata, dict) else None
            raise UpstreamResponseError(f"API error: {message or 'Unknown error'}")

        records = body.get("data") or []
        if not isinstance(records, list):
            records = []

        return CatalogPage(
            page=page,
            records=records,
            pagination=Pagination.from_payload(body.get("pagination")),
            success=True,
        )

    async def fetch(self, page: int) -> CatalogPage:
        """
        Fetch one page, retrying up to ``policy.max_attempts`` times.

        Raises:
            FetchError: After the final failed attempt; carries page, attempt
                count and the last underlying exception.
        """
        client = await self._get_client()

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                logger.debug(f"Fetching page {page} (attempt {attempt})")
                result = await self._fetch_once(client, page)
                metrics.record_fetch_attempt(success=True)
                return result

            except (httpx.HTTPError, UpstreamResponseError, ValueError) as e:
                metrics.record_fetch_attempt(success=False)

                if attempt >= self.policy.max_attempts:
                    logger.error(
                        f"{self.policy.name}: page {page} failed after "
                        f"{attempt} attempts: {e}"
                    )
                    raise FetchError(page=page, attempts=attempt, cause=e) from e

                sleep_s = self.policy.backoff(attempt)
                logger.warning(
                    f"{self.policy.name}: attempt {attempt}/{self.policy.max_attempts} "
                    f"for page {page} failed ({type(e).__name__}: {e}), "
                    f"retrying in {sleep_s:.1f}s"
                )
                await asyncio.sleep(sleep_s)

        # max_attempts is always >= 1, so the loop either returns or raises
        raise FetchError(page=page, attempts=self.policy.max_attempts)
