"""Search-as-you-type coordinator over a location's inventory.

Wires the debouncer, request controller, retry policy, baseline cache and
availability filter into one object consumed by the sale and transfer
creation flows. Each logical request moves through::

    IDLE -> DEBOUNCING -> CACHE_HIT -> APPLIED
                       -> FETCHING -> [RETRYING]* -> APPLIED | FAILED | CANCELLED

Transitions are driven by three events: the debounced input settling, a
response (or failure) arriving for an epoch, and teardown. A response is
applied only while its epoch is still the controller's current epoch.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .availability import filter_sellable
from .cache import BaselineCache, BaselineKey
from .config import Settings, settings as default_settings
from .debounce import Debouncer
from .errors import FailureKind, FetchError, classify_failure, message_for
from .lifecycle import AbortReason, RequestController, RequestScope
from .models import (
    InventoryItem,
    InventoryPage,
    ProductType,
    ResultPage,
    SearchParameters,
    SearchPhase,
    SearchState,
)
from .retry import RetryPolicy
from .transport import InventoryFetcher, build_request_params, effective_search

logger = logging.getLogger(__name__)

Listener = Callable[[SearchState], None]


class SearchCoordinator:
    def __init__(
        self,
        fetcher: InventoryFetcher,
        *,
        location_id: Optional[str] = None,
        product_type: Optional[ProductType] = None,
        config: Settings = default_settings,
        debounce_ms: Optional[int] = None,
        page_size: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        min_search_length: Optional[int] = None,
    ) -> None:
        self._fetcher = fetcher
        self._params = SearchParameters(location_id=location_id, product_type=product_type)
        self.page_size = page_size if page_size is not None else config.page_size
        self.min_search_length = (
            min_search_length if min_search_length is not None else config.min_search_length
        )
        self._debouncer: Debouncer[str] = Debouncer(
            debounce_ms if debounce_ms is not None else config.debounce_ms,
            self._on_query_settled,
            initial="",
        )
        self._controller = RequestController(
            timeout_ms if timeout_ms is not None else config.request_timeout_ms
        )
        self._retry = RetryPolicy(
            max_retries if max_retries is not None else config.max_retries,
            retry_delay_ms if retry_delay_ms is not None else config.retry_delay_ms,
        )
        self._cache = BaselineCache()
        self._state = SearchState()
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._baseline: Optional[asyncio.Task] = None
        self._baseline_key: Optional[BaselineKey] = None
        self._last_dispatched: Optional[str] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._opened = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def open(self) -> "SearchCoordinator":
        """Issue the initial baseline request for the current parameters."""
        if self._closed:
            raise RuntimeError("search coordinator is closed")
        if not self._opened:
            self._opened = True
            logger.debug("open params=%r", self._params)
            self._dispatch(self._debouncer.value)
        return self

    def close(self) -> None:
        """Teardown: cancel the debounce timer, the active request and its timers."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.close()
        self._controller.close()
        self._cancel_baseline()
        self._state = self._state.model_copy(update={"phase": SearchPhase.CANCELLED})
        self._listeners.clear()
        self._refresh_idle()
        logger.debug("closed")

    async def aclose(self) -> None:
        self.close()
        pending = {task for task in (self._task, self._baseline) if task is not None and not task.done()}
        if pending:
            await asyncio.wait(pending)

    async def __aenter__(self) -> "SearchCoordinator":
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------
    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def params(self) -> SearchParameters:
        return self._params

    @property
    def cache(self) -> BaselineCache:
        return self._cache

    @property
    def query(self) -> str:
        return self._debouncer.value

    @property
    def results(self) -> List[InventoryItem]:
        return self._state.results

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_debouncing(self) -> bool:
        return self._debouncer.is_pending

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_query(self, text: str) -> None:
        self._ensure_open()
        self._debouncer.push(text)
        phase = SearchPhase.DEBOUNCING if self._debouncer.is_pending else self._state.phase
        self._publish(query=text, phase=phase)
        self._refresh_idle()

    def clear_search(self) -> None:
        """Reset the query to empty; the baseline is served from cache when present."""
        self._ensure_open()
        active = self._controller.active
        if (
            self._debouncer.value == ""
            and not self._debouncer.has_timer
            and active is not None
            and active.params.query == ""
        ):
            logger.debug("clear with baseline already in flight epoch=%s", active.epoch)
            return
        self._debouncer.reset("")
        self._publish(query="")
        self._dispatch("")

    def refresh(self) -> None:
        """Drop the cached baseline and re-issue the current query."""
        self._ensure_open()
        query = self._debouncer.value
        self._cache.invalidate()
        self._cancel_baseline()
        self._debouncer.reset(query)
        self._last_dispatched = None
        self._dispatch(query)

    def set_parameters(self, location_id: Optional[str], product_type: Optional[ProductType] = None) -> None:
        """Switch location or product type.

        This is a reset rather than a query change: the cached baseline is
        dropped, the query cleared and a baseline fetch issued immediately.
        """
        self._ensure_open()
        if (location_id, product_type) == self._params.key:
            return
        logger.info(
            "parameters changed loc=%s type=%s -> loc=%s type=%s",
            self._params.location_id,
            self._params.product_type,
            location_id,
            product_type,
        )
        self._params = SearchParameters(location_id=location_id, product_type=product_type)
        self._cache.invalidate()
        self._cancel_baseline()
        self._debouncer.reset("")
        self._last_dispatched = None
        self._publish(query="")
        self._dispatch("")

    def as_consumer_dict(self) -> Dict[str, Any]:
        state = self._state
        return {
            "searchQuery": self.query,
            "setSearchQuery": self.set_query,
            "results": state.results,
            "isLoading": state.is_loading,
            "isDebouncing": self.is_debouncing,
            "error": state.error_message,
            "hasMore": state.has_more,
            "totalCount": state.total_count,
            "clearSearch": self.clear_search,
            "refresh": self.refresh,
        }

    async def wait_idle(self) -> SearchState:
        """Wait until no debounce timer is armed and no request is in flight."""
        while not self._idle.is_set():
            await self._idle.wait()
        return self._state

    # ------------------------------------------------------------------
    # Event: input settled
    # ------------------------------------------------------------------
    def _on_query_settled(self, query: str) -> None:
        if query == self._last_dispatched:
            logger.debug("settled q=%r unchanged, no request", query)
            self._publish(phase=self._state.phase)
            self._refresh_idle()
            return
        self._dispatch(query)

    def _dispatch(self, query: str) -> None:
        if self._closed:
            return
        self._last_dispatched = query
        params = self._params.model_copy(update={"query": query})

        if params.location_id is None:
            self._controller.invalidate()
            self._publish(
                results=[],
                total_count=0,
                has_more=False,
                is_loading=False,
                error=None,
                error_message=None,
                phase=SearchPhase.APPLIED,
            )
            self._refresh_idle()
            return

        if not effective_search(query, self.min_search_length):
            cached = self._cache.lookup(params.key)
            if cached is not None:
                epoch = self._controller.invalidate()
                logger.info("baseline served from cache epoch=%s loc=%s", epoch, params.location_id)
                self._publish(phase=SearchPhase.CACHE_HIT)
                self._apply(cached)
                self._refresh_idle()
                return

        scope = self._controller.start(params)
        self._publish(is_loading=True, error=None, error_message=None, phase=SearchPhase.FETCHING)
        task = asyncio.get_running_loop().create_task(self._execute(scope))
        scope.bind(task)
        task.add_done_callback(self._on_task_done)
        self._task = task
        self._refresh_idle()

    # ------------------------------------------------------------------
    # Event: response received
    # ------------------------------------------------------------------
    async def _execute(self, scope: RequestScope) -> None:
        params = scope.params
        logger.debug("fetch epoch=%s loc=%s q=%r", scope.epoch, params.location_id, params.query)
        load: Optional[asyncio.Task] = None
        try:
            if effective_search(params.query, self.min_search_length):
                result = await self._load(scope)
            else:
                load = self._join_baseline(scope)
                result = await asyncio.shield(load)
        except asyncio.CancelledError:
            if load is not None and not self._keeps_baseline(scope):
                load.cancel()
            if self._owns(scope) and scope.timed_out:
                self._controller.finish(scope)
                self._fail(scope, FetchError(FailureKind.TIMEOUT, "request timed out"))
                return
            logger.debug("cancelled epoch=%s reason=%s", scope.epoch, scope.reason)
            raise
        except Exception as exc:
            self._controller.finish(scope)
            if self._owns(scope):
                self._fail(scope, exc)
            else:
                logger.debug("discarded failure epoch=%s: %r", scope.epoch, exc)
            return
        self._controller.finish(scope)
        self._on_response(scope, result)

    def _join_baseline(self, scope: RequestScope) -> asyncio.Task:
        """Return the in-flight baseline load for the scope's key, starting one if needed.

        The load runs in its own task so a query change does not abort it: it
        still fills the cache, and the epoch check keeps it off screen.
        """
        key = scope.params.key
        pending = self._baseline
        if pending is not None and not pending.done() and self._baseline_key == key:
            logger.debug("joined in-flight baseline epoch=%s key=%s", scope.epoch, key)
            return pending
        self._cancel_baseline()
        task = asyncio.get_running_loop().create_task(self._load_baseline(scope))
        task.add_done_callback(self._on_baseline_done)
        self._baseline, self._baseline_key = task, key
        return task

    async def _load_baseline(self, scope: RequestScope) -> ResultPage:
        key = scope.params.key
        try:
            return await asyncio.wait_for(
                self._cache.get_or_fetch(
                    key,
                    lambda: self._load(scope, bound=False),
                    is_current_key=lambda current: not self._closed and current == self._params.key,
                ),
                self._controller.timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            raise FetchError(FailureKind.TIMEOUT, "baseline load timed out") from exc

    def _keeps_baseline(self, scope: RequestScope) -> bool:
        # Only a query change may leave the baseline load running.
        return (
            not self._closed
            and scope.reason is AbortReason.SUPERSEDED
            and scope.params.key == self._params.key
        )

    def _cancel_baseline(self) -> None:
        task, self._baseline, self._baseline_key = self._baseline, None, None
        if task is not None and not task.done():
            task.cancel()

    def _on_baseline_done(self, task: asyncio.Task) -> None:
        if task is self._baseline:
            self._baseline, self._baseline_key = None, None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("baseline load failed: %r", task.exception())
        self._refresh_idle()

    async def _load(self, scope: RequestScope, *, bound: bool = True) -> ResultPage:
        # An unbound load is stopped by cancelling its task, not by the scope.
        token = scope if bound else None
        page = await self._retry.run(
            lambda: self._fetch(scope, token),
            token,
            on_retry=lambda number, exc: self._on_retry(scope, number),
        )
        return ResultPage.from_inventory_page(page)

    async def _fetch(self, scope: RequestScope, token: Optional[RequestScope]) -> InventoryPage:
        params = build_request_params(
            scope.params.query,
            scope.params.product_type,
            page_size=self.page_size,
            min_search_length=self.min_search_length,
        )
        return await self._fetcher.fetch_page(scope.params.location_id, params, token)

    def _on_response(self, scope: RequestScope, result: ResultPage) -> None:
        params = scope.params
        if not self._controller.is_current(scope):
            logger.debug("discarded stale response epoch=%s current=%s", scope.epoch, self._controller.epoch)
            return
        self._apply(result)
        logger.info(
            "applied epoch=%s loc=%s q=%r items=%s total=%s",
            scope.epoch,
            params.location_id,
            params.query,
            len(self._state.results),
            result.total_count,
        )

    def _on_retry(self, scope: RequestScope, number: int) -> None:
        if self._controller.is_current(scope):
            self._publish(phase=SearchPhase.RETRYING)

    def _apply(self, result: ResultPage) -> None:
        self._publish(
            results=filter_sellable(result.items),
            total_count=result.total_count,
            has_more=result.has_more,
            is_loading=False,
            error=None,
            error_message=None,
            phase=SearchPhase.APPLIED,
        )

    def _fail(self, scope: RequestScope, exc: BaseException) -> None:
        kind = classify_failure(exc)
        if kind is None:
            return
        logger.warning(
            "search failed epoch=%s loc=%s q=%r kind=%s: %r",
            scope.epoch,
            scope.params.location_id,
            scope.params.query,
            kind.value,
            exc,
        )
        self._publish(
            results=[],
            total_count=0,
            has_more=False,
            is_loading=False,
            error=kind,
            error_message=message_for(kind),
            phase=SearchPhase.FAILED,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _owns(self, scope: RequestScope) -> bool:
        """Scope is the latest epoch and was not superseded or torn down."""
        if self._controller.closed or scope.epoch != self._controller.epoch:
            return False
        return scope.reason in (None, AbortReason.TIMEOUT)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self._task = None
        self._refresh_idle()

    def _refresh_idle(self) -> None:
        busy = not self._closed and (
            self._debouncer.has_timer
            or any(task is not None and not task.done() for task in (self._task, self._baseline))
        )
        if busy:
            self._idle.clear()
        else:
            self._idle.set()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("search coordinator is closed")
        if not self._opened:
            raise RuntimeError("search coordinator is not open")

    def _publish(self, **changes: Any) -> None:
        if self._closed:
            return
        changes.setdefault("is_debouncing", self._debouncer.is_pending)
        changes.setdefault("query", self._debouncer.value)
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self._state)
