"""Tests for the catalog API client."""

import httpx
import pytest

from product_ingest.errors import FetchError
from product_ingest.ingest.http_client import RetryPolicy
from product_ingest.ingest.source_client import CatalogSourceClient

BASE_URL = "https://catalog.test/products/v1/products/"


def _envelope(records, page_count=3, is_error=False, message=None):
    metadata = {"is_error": is_error}
    if message:
        metadata["message"] = message
    return {
        "metadata": metadata,
        "data": records,
        "pagination": {"pageCount": page_count, "totalItemCount": 250},
    }


class CatalogStub:
    """Replays queued responses (or raises queued transport errors) per request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, type) and issubclass(response, Exception):
            raise response("stubbed transport error", request=request)
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


def _client(stub, max_attempts=3):
    return CatalogSourceClient(
        base_url=BASE_URL,
        page_size=100,
        policy=RetryPolicy(name="catalog", max_attempts=max_attempts, retry_delay=0),
        client=httpx.AsyncClient(transport=httpx.MockTransport(stub)),
    )


@pytest.mark.asyncio
async def test_fetch_page():
    stub = CatalogStub(httpx.Response(200, json=_envelope([{"id": 1}, {"id": 2}])))
    client = _client(stub)

    page = await client.fetch(2)

    assert page.page == 2
    assert [r["id"] for r in page.records] == [1, 2]
    assert page.pagination.page_count == 3
    assert page.pagination.total_items == 250
    assert not page.is_empty

    request = stub.requests[-1]
    assert str(request.url).startswith(BASE_URL)
    assert request.url.params["page"] == "2"
    assert request.url.params["page_size"] == "100"
    assert request.headers["Accept"] == "application/json"
    assert "ProductIngest" in request.headers["User-Agent"]


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    stub = CatalogStub(
        httpx.ConnectTimeout,
        httpx.ReadTimeout,
        httpx.Response(200, json=_envelope([{"id": 1}])),
    )
    client = _client(stub)

    page = await client.fetch(1)

    assert len(stub.requests) == 3
    assert len(page.records) == 1


@pytest.mark.asyncio
async def test_error_envelope_is_retried_then_fails():
    stub = CatalogStub(httpx.Response(200, json=_envelope([], is_error=True, message="maintenance")))
    client = _client(stub, max_attempts=2)

    with pytest.raises(FetchError) as exc_info:
        await client.fetch(4)

    assert len(stub.requests) == 2
    assert exc_info.value.page == 4
    assert exc_info.value.attempts == 2
    assert "maintenance" in str(exc_info.value)


@pytest.mark.asyncio
async def test_server_error_exhausts_retries():
    stub = CatalogStub(httpx.Response(503))
    client = _client(stub)

    with pytest.raises(FetchError) as exc_info:
        await client.fetch(1)

    assert len(stub.requests) == 3
    assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_missing_metadata_is_an_error():
    stub = CatalogStub(httpx.Response(200, json={"data": [{"id": 1}]}))
    client = _client(stub, max_attempts=1)

    with pytest.raises(FetchError):
        await client.fetch(1)


@pytest.mark.asyncio
async def test_empty_page():
    stub = CatalogStub(httpx.Response(200, json={"metadata": {"is_error": False}, "data": None}))
    client = _client(stub)

    page = await client.fetch(9)

    assert page.is_empty
    assert page.pagination is None


@pytest.mark.asyncio
async def test_injected_client_is_not_closed():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(CatalogStub(httpx.Response(200))))
    client = CatalogSourceClient(base_url=BASE_URL, client=http_client)

    await client.close()

    assert not http_client.is_closed
    await http_client.aclose()


def test_retry_policy_backoff_is_linear():
    policy = RetryPolicy(name="catalog", max_attempts=3, retry_delay=1.0)
    assert [policy.backoff(a) for a in (1, 2, 3)] == [1.0, 2.0, 3.0]


def test_retry_policy_timeout_is_optional():
    assert RetryPolicy(name="catalog").timeout == httpx.Timeout(30.0)
    assert RetryPolicy(name="catalog", timeout=None).timeout == httpx.Timeout(30.0)
    assert RetryPolicy(name="catalog", timeout=httpx.Timeout(5.0)).timeout == httpx.Timeout(5.0)
    assert RetryPolicy(name="catalog", max_attempts=0).max_attempts == 1
