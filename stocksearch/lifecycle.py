"""Request lifecycle: one current fetch, epochs, timeouts and aborts."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from .errors import FailureKind, FetchError
from .models import SearchParameters

logger = logging.getLogger(__name__)


class AbortReason(str, Enum):
    SUPERSEDED = "superseded"
    TIMEOUT = "timeout"
    TEARDOWN = "teardown"


class RequestScope:
    """Cancellation token for a single logical request.

    A scope is handed to the fetcher and the retry policy. Cancelling it
    cancels the bound task, which interrupts the in-flight fetch or a pending
    retry backoff at its next suspension point.
    """

    def __init__(self, epoch: int, params: SearchParameters) -> None:
        self.epoch = epoch
        self.params = params
        self.reason: Optional[AbortReason] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    @property
    def timed_out(self) -> bool:
        return self.reason is AbortReason.TIMEOUT

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self.cancelled:
            task.cancel()

    def cancel(self, reason: AbortReason = AbortReason.SUPERSEDED) -> None:
        if self.reason is not None:
            return
        self.reason = reason
        logger.debug("abort epoch=%s reason=%s", self.epoch, reason.value)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def raise_if_cancelled(self) -> None:
        if self.reason is AbortReason.TIMEOUT:
            raise FetchError(FailureKind.TIMEOUT, "request timed out")
        if self.reason is not None:
            raise FetchError(FailureKind.ABORTED, f"request aborted ({self.reason.value})")

    def __repr__(self) -> str:
        return f"RequestScope(epoch={self.epoch}, reason={self.reason}, params={self.params!r})"


class RequestController:
    """Owns at most one active :class:`RequestScope` at a time."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self._epoch = 0
        self._active: Optional[RequestScope] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def active(self) -> Optional[RequestScope]:
        return self._active

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, params: SearchParameters) -> RequestScope:
        if self._closed:
            raise RuntimeError("request controller is closed")
        self.abort(AbortReason.SUPERSEDED)
        self._epoch += 1
        scope = RequestScope(self._epoch, params)
        self._active = scope
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_ms / 1000, self._expire, scope)
        logger.debug("start epoch=%s params=%r timeout=%sms", scope.epoch, params, self.timeout_ms)
        return scope

    def invalidate(self) -> int:
        """Advance the epoch without starting a request.

        Used when a result is applied synchronously (cache hit) so that any
        response still on its way for an older epoch is discarded.
        """
        self.abort(AbortReason.SUPERSEDED)
        self._epoch += 1
        return self._epoch

    def is_current(self, scope: RequestScope) -> bool:
        return not self._closed and scope.epoch == self._epoch and not scope.cancelled

    def finish(self, scope: RequestScope) -> None:
        """Disarm the timeout once the request completed (either way)."""
        if self._active is scope:
            self._disarm()
            self._active = None

    def abort(self, reason: AbortReason = AbortReason.SUPERSEDED) -> None:
        self._disarm()
        scope, self._active = self._active, None
        if scope is not None:
            scope.cancel(reason)

    def close(self) -> None:
        if self._closed:
            return
        self.abort(AbortReason.TEARDOWN)
        self._closed = True

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self, scope: RequestScope) -> None:
        self._timer = None
        if self._active is not scope:
            return
        logger.warning("timeout epoch=%s after %sms", scope.epoch, self.timeout_ms)
        scope.cancel(AbortReason.TIMEOUT)
