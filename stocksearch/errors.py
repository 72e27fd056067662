"""Failure taxonomy shared by the transport and the search coordinator.

Two closed sets live here:

* :class:`FailureKind` describes *why a fetch attempt failed* as reported by
  the transport (aborted, 4xx, 5xx, network, timeout). The retry policy keys
  off it.
* :class:`ErrorKind` is what a consumer page is allowed to see. Raw exceptions
  never leave the coordinator; they are folded into one of these with a
  one-line message.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    ABORTED = "aborted"
    HTTP_4XX = "http_4xx"
    HTTP_5XX = "http_5xx"
    NETWORK = "network"
    TIMEOUT = "timeout"


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    TIMEOUT = "timeout"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "Location not found.",
    ErrorKind.FORBIDDEN: "You do not have access to this location.",
    ErrorKind.TIMEOUT: "The request timed out. Please try again.",
    ErrorKind.OFFLINE: "No network connection.",
    ErrorKind.UNKNOWN: "Failed to load products.",
}


class FetchError(Exception):
    """Rejection raised by an inventory fetcher."""

    def __init__(
        self,
        kind: FailureKind,
        message: str = "",
        *,
        status: Optional[int] = None,
        offline: bool = False,
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.status = status
        self.offline = offline

    @classmethod
    def from_status(cls, status: int, message: str = "") -> "FetchError":
        kind = FailureKind.HTTP_4XX if 400 <= status < 500 else FailureKind.HTTP_5XX
        return cls(kind, message or f"HTTP {status}", status=status)

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value!r}, status={self.status!r}, offline={self.offline!r})"


def is_abort(exc: BaseException) -> bool:
    """True for failures that represent supersession rather than a real error."""
    if isinstance(exc, asyncio.CancelledError):
        return True
    return isinstance(exc, FetchError) and exc.kind is FailureKind.ABORTED


def is_retryable(exc: BaseException) -> bool:
    """Transient failures worth another attempt: network errors and 5xx.

    Aborts, timeouts and client errors are terminal. Unexpected exceptions
    (for example a malformed payload) are treated like transient failures.
    """
    if is_abort(exc):
        return False
    if isinstance(exc, FetchError):
        return exc.kind in (FailureKind.HTTP_5XX, FailureKind.NETWORK)
    return isinstance(exc, Exception)


def classify_failure(exc: BaseException) -> Optional[ErrorKind]:
    """Fold a terminal failure into the consumer taxonomy.

    Returns ``None`` for aborts, which are never surfaced.
    """
    if is_abort(exc):
        return None
    if isinstance(exc, FetchError):
        if exc.status == 404:
            return ErrorKind.NOT_FOUND
        if exc.status == 403:
            return ErrorKind.FORBIDDEN
        if exc.kind is FailureKind.TIMEOUT:
            return ErrorKind.TIMEOUT
        if exc.kind is FailureKind.NETWORK and exc.offline:
            return ErrorKind.OFFLINE
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    return ErrorKind.UNKNOWN


def message_for(kind: Optional[ErrorKind]) -> Optional[str]:
    if kind is None:
        return None
    return ERROR_MESSAGES[kind]
