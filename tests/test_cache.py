"""Tests for the single-entry baseline cache."""
from __future__ import annotations

from stocksearch.cache import BaselineCache
from stocksearch.models import InventoryItem, ProductType, ResultPage

PAGE = ResultPage(
    items=[InventoryItem(product_id="p-1", available_quantity=2)],
    total_count=1,
)
KEY = ("L1", ProductType.FRAME)


def test_lookup_hits_only_for_stored_key():
    cache = BaselineCache()
    assert cache.lookup(KEY) is None

    cache.store(KEY, PAGE)

    assert cache.lookup(KEY) is PAGE
    assert cache.lookup(("L2", ProductType.FRAME)) is None
    assert cache.lookup(("L1", None)) is None
    assert (cache.hits, cache.misses) == (1, 3)


def test_storing_new_key_replaces_entry():
    cache = BaselineCache()
    cache.store(KEY, PAGE)

    cache.store(("L2", None), ResultPage())

    assert cache.lookup(KEY) is None
    assert cache.entry.key == ("L2", None)


def test_invalidate_drops_entry():
    cache = BaselineCache()
    cache.store(KEY, PAGE)

    cache.invalidate()

    assert cache.entry is None
    assert cache.lookup(KEY) is None


async def test_get_or_fetch_loads_once():
    cache = BaselineCache()
    loads = []

    async def loader() -> ResultPage:
        loads.append(1)
        return PAGE

    first = await cache.get_or_fetch(KEY, loader)
    second = await cache.get_or_fetch(KEY, loader)

    assert first is second is PAGE
    assert len(loads) == 1


async def test_get_or_fetch_skips_store_for_stale_key():
    cache = BaselineCache()

    async def loader() -> ResultPage:
        return PAGE

    page = await cache.get_or_fetch(KEY, loader, is_current_key=lambda key: False)

    assert page is PAGE
    assert cache.entry is None
