"""Tests for request shaping and the HTTP fetcher."""
from __future__ import annotations

import asyncio
import contextlib
import json
import socket

import httpx
import pytest

from stocksearch.config import settings
from stocksearch.coordinator import SearchCoordinator
from stocksearch.errors import FailureKind, FetchError
from stocksearch.lifecycle import RequestScope
from stocksearch.models import ProductType, SearchParameters
from stocksearch.transport import HttpInventoryFetcher, build_request_params, effective_search

BASE_URL = "http://inventory.test/api/v1"


def _fetcher(handler) -> HttpInventoryFetcher:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpInventoryFetcher(BASE_URL, client=client)


def test_search_and_type_only_when_set():
    assert build_request_params("", None, page_size=50) == {
        "page": 0,
        "size": 50,
        "sortBy": "createdAt",
        "sortDirection": "desc",
    }
    params = build_request_params("  Ray ", ProductType.FRAME, page_size=10)
    assert params["search"] == "Ray"
    assert params["productType"] == "FRAME"
    assert params["size"] == 10


def test_min_search_length_suppresses_short_terms():
    assert effective_search("ab", 3) == ""
    assert effective_search("abc", 3) == "abc"
    assert effective_search("   ", 0) == ""
    assert "search" not in build_request_params("ab", None, min_search_length=3)


async def test_fetch_unwraps_envelope():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "content": [
                        {
                            "productId": "p-1",
                            "productType": "FRAME",
                            "quantity": 3,
                            "reservedQuantity": 1,
                            "availableQuantity": 2,
                            "product": {"model": "RB3025", "brand": {"id": "b-1", "name": "Ray-Ban"}},
                        }
                    ],
                    "totalElements": 1,
                    "totalPages": 1,
                },
                "error": None,
                "timestamp": "2024-01-01T00:00:00Z",
            },
        )

    fetcher = _fetcher(handler)
    page = await fetcher.fetch_page("L1", build_request_params("ray", ProductType.FRAME))
    await fetcher.aclose()

    assert seen["path"] == "/api/v1/inventory/location/L1"
    assert seen["params"]["search"] == "ray"
    assert seen["params"]["productType"] == "FRAME"
    assert page.total_elements == 1
    item = page.content[0]
    assert item.available_quantity == 2
    assert item.product.brand.name == "Ray-Ban"
    assert item.product_type is ProductType.FRAME


@pytest.mark.parametrize("status, kind", [(404, FailureKind.HTTP_4XX), (503, FailureKind.HTTP_5XX)])
async def test_http_errors_carry_status(status, kind):
    fetcher = _fetcher(lambda request: httpx.Response(status, json={"success": False, "error": "nope"}))

    with pytest.raises(FetchError) as excinfo:
        await fetcher.fetch_page("L1", {})

    assert excinfo.value.kind is kind
    assert excinfo.value.status == status
    assert str(excinfo.value) == "nope"


async def test_connect_error_is_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler).fetch_page("L1", {})

    assert excinfo.value.kind is FailureKind.NETWORK
    assert excinfo.value.offline is False


async def test_dns_failure_is_reported_offline():
    def handler(request):
        try:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        except socket.gaierror as exc:
            raise httpx.ConnectError("dns lookup failed", request=request) from exc

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler).fetch_page("L1", {})

    assert excinfo.value.kind is FailureKind.NETWORK
    assert excinfo.value.offline is True


async def test_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler).fetch_page("L1", {})

    assert excinfo.value.kind is FailureKind.TIMEOUT


async def test_cancelled_scope_skips_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"content": []})

    scope = RequestScope(1, SearchParameters(location_id="L1"))
    scope.cancel()

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler).fetch_page("L1", {}, scope)

    assert excinfo.value.kind is FailureKind.ABORTED
    assert calls == []


SLOW_PAGE = {
    "success": True,
    "data": {
        "content": [
            {
                "productId": "p-1",
                "productType": "FRAME",
                "quantity": 2,
                "reservedQuantity": 0,
                "availableQuantity": 2,
                "product": {"model": "RB3025"},
            }
        ],
        "totalElements": 1,
        "totalPages": 1,
    },
    "error": None,
    "timestamp": "2024-01-01T00:00:00Z",
}


@contextlib.asynccontextmanager
async def slow_server(delay: float):
    """Plain HTTP/1.1 server that answers every request after ``delay`` seconds."""

    body = json.dumps(SLOW_PAGE).encode()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await reader.readuntil(b"\r\n\r\n")
        await asyncio.sleep(delay)
        try:
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                b"Content-Length: " + str(len(body)).encode() + b"\r\n"
                b"Connection: close\r\n\r\n" + body
            )
            await writer.drain()
        except ConnectionError:
            pass
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    host, port = server.sockets[0].getsockname()[:2]
    try:
        yield f"http://{host}:{port}/api/v1"
    finally:
        server.close()
        await server.wait_closed()


async def test_client_timeout_follows_request_budget():
    fetcher = HttpInventoryFetcher(BASE_URL)
    await fetcher.aclose()
    assert fetcher._client.timeout == httpx.Timeout(settings.request_timeout_ms / 1000)

    fetcher = HttpInventoryFetcher(BASE_URL, timeout_ms=6000)
    await fetcher.aclose()
    assert fetcher._client.timeout.read == 6.0


async def test_response_slower_than_httpx_default_is_applied():
    """A 5.5s answer is inside the 10s budget and must not be reported as a timeout."""

    async with slow_server(5.5) as base_url:
        async with HttpInventoryFetcher(base_url) as fetcher:
            async with SearchCoordinator(fetcher, location_id="L1", timeout_ms=10000) as coordinator:
                state = await coordinator.wait_idle()

    assert state.error is None
    assert [item.product_id for item in state.results] == ["p-1"]


async def test_transport_timeout_uses_configured_budget():
    async with slow_server(0.5) as base_url:
        async with HttpInventoryFetcher(base_url, timeout_ms=100) as fetcher:
            with pytest.raises(FetchError) as excinfo:
                await fetcher.fetch_page("L1", build_request_params("", None))

    assert excinfo.value.kind is FailureKind.TIMEOUT
