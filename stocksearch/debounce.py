"""Debounced value holder driven by the asyncio event loop."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Debouncer(Generic[T]):
    """Republishes a value once it has been stable for ``delay_ms``.

    Each :meth:`push` restarts the timer; the latest value is always the one
    that settles, earlier ones are only superseded. ``on_settle`` is called
    with the settled value from the event loop. :meth:`close` cancels the
    pending timer so nothing fires into a torn-down consumer.
    """

    def __init__(
        self,
        delay_ms: int,
        on_settle: Optional[Callable[[T], None]] = None,
        *,
        initial: T,
    ) -> None:
        self.delay_ms = delay_ms
        self._on_settle = on_settle
        self._value: T = initial
        self._debounced: T = initial
        self._handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def debounced(self) -> T:
        return self._debounced

    @property
    def is_pending(self) -> bool:
        return self._value != self._debounced

    @property
    def has_timer(self) -> bool:
        return self._handle is not None

    def push(self, value: T) -> None:
        if self._closed:
            logger.debug("push after close ignored value=%r", value)
            return
        self._value = value
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_ms / 1000, self._fire)
        logger.debug("debounce armed value=%r delay=%sms", value, self.delay_ms)

    def reset(self, value: T) -> None:
        """Set both current and settled value without notifying."""
        self._cancel_timer()
        self._value = value
        self._debounced = value

    def cancel(self) -> None:
        """Drop the pending timer; the current value stays unsettled."""
        self._cancel_timer()

    def flush(self) -> None:
        """Settle the current value immediately."""
        if self._handle is None:
            return
        self._cancel_timer()
        self._fire()

    def close(self) -> None:
        self._closed = True
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if self._closed:
            return
        self._debounced = self._value
        logger.debug("debounce settled value=%r", self._debounced)
        if self._on_settle is not None:
            self._on_settle(self._debounced)
