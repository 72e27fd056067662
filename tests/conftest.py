"""Shared fixtures: a tiny two-location store and fetchers over it."""
from __future__ import annotations

import pytest

from stocksearch.backend import InMemoryInventoryFetcher, InventoryStore, Location, Product
from stocksearch.coordinator import SearchCoordinator
from stocksearch.models import ProductType


def build_store() -> InventoryStore:
    store = InventoryStore()
    store.add_location(Location("L1", "Main Street Store"))
    store.add_location(Location("L2", "Riverside Store"))
    for product in (
        Product("p-ray1", ProductType.FRAME, "RB3025", brand="Ray-Ban", model="RB3025 Aviator",
                sku="RB-3025", color="Gold", size="58"),
        Product("p-ray2", ProductType.FRAME, "RB4171", brand="Ray-Ban", model="RB4171 Erika",
                sku="RB-4171", color="Havana", size="54"),
        Product("p-ray3", ProductType.FRAME, "RB5154", brand="Ray-Ban", model="RB5154 Clubmaster",
                sku="RB-5154", color="Black", size="51"),
        Product("p-oak", ProductType.FRAME, "OX8046", brand="Oakley", model="OX8046 Airdrop",
                sku="OX-8046", color="Satin Black", size="55"),
        Product("p-lens", ProductType.CONTACT_LENS, "Acuvue Oasys", brand="Acuvue",
                model="Oasys", sku="AC-OAS", lens_type="BI_WEEKLY", power="-1.50"),
    ):
        store.add_product(product)

    store.set_stock("p-ray1", "L1", 4)
    store.set_stock("p-ray2", "L1", 3, reserved=3)
    store.set_stock("p-oak", "L1", 5, reserved=1)
    store.set_stock("p-lens", "L1", 10)

    store.set_stock("p-ray1", "L2", 2)
    store.set_stock("p-ray3", "L2", 6)
    store.set_stock("p-oak", "L2", 1)
    return store


@pytest.fixture
def store() -> InventoryStore:
    return build_store()


@pytest.fixture
def fetcher(store: InventoryStore) -> InMemoryInventoryFetcher:
    return InMemoryInventoryFetcher(store, latency_ms=0)


@pytest.fixture
def make_coordinator(fetcher: InMemoryInventoryFetcher):
    """Coordinator factory with millisecond timings suited to tests."""

    def factory(**overrides) -> SearchCoordinator:
        options = dict(
            location_id="L1",
            product_type=ProductType.FRAME,
            debounce_ms=30,
            timeout_ms=2000,
            retry_delay_ms=5,
        )
        options.update(overrides)
        return SearchCoordinator(fetcher, **options)

    return factory
