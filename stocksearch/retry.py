"""Bounded linear-backoff retries for a single logical fetch."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import is_retryable
from .lifecycle import RequestScope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Runs ``attempt`` up to ``max_retries + 1`` times.

    The delay before retry ``n`` is ``retry_delay_ms * n`` (500 ms, 1000 ms
    with defaults). Aborts, timeouts and 4xx responses are raised on the first
    occurrence. Cancelling the scope's task interrupts a pending backoff.
    """

    def __init__(
        self,
        max_retries: int = 2,
        retry_delay_ms: int = 500,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._sleep = sleep

    def delay_for(self, retry_number: int) -> float:
        return self.retry_delay_ms * retry_number / 1000

    async def run(
        self,
        attempt: Callable[[], Awaitable[T]],
        scope: Optional[RequestScope] = None,
        *,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        retry_number = 0
        while True:
            if scope is not None:
                scope.raise_if_cancelled()
            try:
                return await attempt()
            except Exception as exc:
                if not is_retryable(exc) or retry_number >= self.max_retries:
                    raise
                retry_number += 1
                delay = self.delay_for(retry_number)
                logger.warning(
                    "retry %s/%s in %.2fs epoch=%s after %r",
                    retry_number,
                    self.max_retries,
                    delay,
                    scope.epoch if scope is not None else None,
                    exc,
                )
                if on_retry is not None:
                    on_retry(retry_number, exc)
                await self._sleep(delay)
