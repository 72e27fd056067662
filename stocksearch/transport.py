"""Inventory fetcher contract and its HTTP implementation.

The coordinator only needs one capability: fetch a single bounded page of a
location's stock. Transport problems are reported as
:class:`~stocksearch.errors.FetchError` so the retry policy and the error
taxonomy do not depend on httpx.
"""
from __future__ import annotations

import errno
import logging
import socket
from typing import Any, Dict, Optional, Protocol

import httpx

from .config import settings
from .errors import FailureKind, FetchError
from .lifecycle import RequestScope
from .models import InventoryPage, ProductType, extract_page

logger = logging.getLogger(__name__)

SORT_BY = "createdAt"
SORT_DIRECTION = "desc"
OFFLINE_ERRNOS = {errno.ENETUNREACH, errno.ENETDOWN, errno.EHOSTUNREACH}


class InventoryFetcher(Protocol):
    async def fetch_page(
        self,
        location_id: str,
        params: Dict[str, Any],
        scope: Optional[RequestScope] = None,
    ) -> InventoryPage: ...


def effective_search(query: str, min_search_length: int = 0) -> str:
    """Search term actually sent upstream; empty means the baseline."""
    term = (query or "").strip()
    if len(term) < max(min_search_length, 1):
        return ""
    return term


def build_request_params(
    query: str,
    product_type: Optional[ProductType],
    *,
    page_size: int = settings.page_size,
    min_search_length: int = 0,
) -> Dict[str, Any]:
    """Shape the single-page request; ``search``/``productType`` only when set."""
    params: Dict[str, Any] = {
        "page": 0,
        "size": page_size,
        "sortBy": SORT_BY,
        "sortDirection": SORT_DIRECTION,
    }
    term = effective_search(query, min_search_length)
    if term:
        params["search"] = term
    if product_type is not None:
        params["productType"] = ProductType(product_type).value
    return params


def _looks_offline(exc: BaseException) -> bool:
    """Walk the cause chain looking for DNS or unreachable-network failures."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        if isinstance(current, OSError) and current.errno in OFFLINE_ERRNOS:
            return True
        current = current.__cause__ or current.__context__
    return False


class HttpInventoryFetcher:
    """Fetches ``GET {base_url}/inventory/location/{location_id}``."""

    def __init__(
        self,
        base_url: str = settings.api_base_url,
        *,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: int = settings.request_timeout_ms,
    ) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        # httpx defaults to 5 s; the per-request budget must govern instead.
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_ms / 1000),
        )

    async def fetch_page(
        self,
        location_id: str,
        params: Dict[str, Any],
        scope: Optional[RequestScope] = None,
    ) -> InventoryPage:
        if scope is not None:
            scope.raise_if_cancelled()
        path = f"/inventory/location/{location_id}"
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise FetchError(FailureKind.TIMEOUT, str(exc) or "transport timeout") from exc
        except httpx.TransportError as exc:
            offline = _looks_offline(exc)
            logger.warning("network error loc=%s offline=%s: %s", location_id, offline, exc)
            raise FetchError(FailureKind.NETWORK, str(exc) or "network error", offline=offline) from exc

        if response.status_code >= 400:
            logger.warning("http %s loc=%s params=%s", response.status_code, location_id, params)
            raise FetchError.from_status(response.status_code, _error_text(response))

        page = extract_page(response.json())
        logger.debug(
            "fetched loc=%s params=%s items=%s total=%s",
            location_id,
            params,
            len(page.content),
            page.total_elements,
        )
        return page

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpInventoryFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"
