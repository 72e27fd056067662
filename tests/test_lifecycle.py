"""Tests for request scopes, epochs and timeouts."""
from __future__ import annotations

import asyncio

import pytest

from stocksearch.errors import FailureKind, FetchError
from stocksearch.lifecycle import AbortReason, RequestController, RequestScope
from stocksearch.models import SearchParameters

PARAMS = SearchParameters(location_id="L1", query="ray")


async def test_start_supersedes_previous_scope():
    controller = RequestController(timeout_ms=1000)

    first = controller.start(PARAMS)
    second = controller.start(PARAMS)

    assert second.epoch == first.epoch + 1
    assert first.reason is AbortReason.SUPERSEDED
    assert not controller.is_current(first)
    assert controller.is_current(second)
    controller.close()


async def test_timeout_aborts_scope_and_bound_task():
    controller = RequestController(timeout_ms=20)
    scope = controller.start(PARAMS)
    task = asyncio.get_running_loop().create_task(asyncio.sleep(1))
    scope.bind(task)

    await asyncio.sleep(0.05)

    assert scope.timed_out
    assert task.cancelled()
    with pytest.raises(FetchError) as excinfo:
        scope.raise_if_cancelled()
    assert excinfo.value.kind is FailureKind.TIMEOUT


async def test_finish_disarms_timeout():
    controller = RequestController(timeout_ms=20)
    scope = controller.start(PARAMS)

    controller.finish(scope)
    await asyncio.sleep(0.05)

    assert not scope.cancelled
    assert controller.active is None


async def test_invalidate_advances_epoch():
    controller = RequestController(timeout_ms=1000)
    scope = controller.start(PARAMS)

    epoch = controller.invalidate()

    assert epoch == scope.epoch + 1
    assert scope.reason is AbortReason.SUPERSEDED
    assert not controller.is_current(scope)


async def test_close_is_unconditional_teardown():
    controller = RequestController(timeout_ms=1000)
    scope = controller.start(PARAMS)

    controller.close()

    assert scope.reason is AbortReason.TEARDOWN
    with pytest.raises(FetchError) as excinfo:
        scope.raise_if_cancelled()
    assert excinfo.value.kind is FailureKind.ABORTED
    with pytest.raises(RuntimeError):
        controller.start(PARAMS)


async def test_bind_after_cancel_cancels_task():
    scope = RequestScope(1, PARAMS)
    scope.cancel()
    task = asyncio.get_running_loop().create_task(asyncio.sleep(1))

    scope.bind(task)
    await asyncio.sleep(0)

    assert task.cancelled()


def test_first_reason_wins():
    scope = RequestScope(1, PARAMS)
    scope.cancel(AbortReason.TIMEOUT)
    scope.cancel(AbortReason.TEARDOWN)

    assert scope.reason is AbortReason.TIMEOUT
