"""In-memory inventory store used as the demo backend and in tests.

Search is plain case-insensitive substring matching over brand, model, name,
sku and color. ``availableQuantity`` is derived as ``quantity - reserved``.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

from .config import settings
from .errors import FetchError
from .lifecycle import RequestScope
from .models import BrandRef, InventoryItem, InventoryPage, ProductSummary, ProductType

logger = logging.getLogger(__name__)

SORT_FIELDS = {"createdAt", "quantity", "availableQuantity"}


class StoreError(Exception):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class Location:
    id: str
    name: str
    type: str = "STORE"


@dataclass
class Product:
    id: str
    type: ProductType
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    sku: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    lens_type: Optional[str] = None
    power: Optional[str] = None
    volume: Optional[float] = None
    notes: Optional[str] = None

    def matches(self, needle: str) -> bool:
        haystack = (self.brand, self.model or self.name, self.sku, self.color)
        return any(needle in (value or "").lower() for value in haystack)

    def summary(self) -> ProductSummary:
        return ProductSummary(
            id=self.id,
            name=self.name,
            model=self.model or self.name,
            brand=BrandRef(id=self.brand.lower().replace(" ", "-"), name=self.brand) if self.brand else None,
            sku=self.sku,
            color=self.color,
            size=self.size,
            lens_type=self.lens_type,
            power=self.power,
            volume=self.volume,
            notes=self.notes,
        )


@dataclass
class StockRecord:
    id: str
    product_id: str
    location_id: str
    quantity: int
    reserved_quantity: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity


class InventoryStore:
    def __init__(self) -> None:
        self.locations: Dict[str, Location] = {}
        self.products: Dict[str, Product] = {}
        self._stock: Dict[Tuple[str, str], StockRecord] = {}
        self._ids = itertools.count(1)

    def add_location(self, location: Location) -> Location:
        self.locations[location.id] = location
        return location

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def set_stock(
        self,
        product_id: str,
        location_id: str,
        quantity: int,
        reserved: int = 0,
        *,
        created_at: Optional[datetime] = None,
    ) -> StockRecord:
        if location_id not in self.locations:
            raise StoreError("Location not found", 404)
        if product_id not in self.products:
            raise StoreError("Product not found", 404)
        record = StockRecord(
            id=f"inventory-{next(self._ids):03d}",
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
            reserved_quantity=reserved,
        )
        if created_at is not None:
            record.created_at = created_at
        self._stock[(product_id, location_id)] = record
        return record

    def _to_item(self, record: StockRecord) -> InventoryItem:
        product = self.products[record.product_id]
        return InventoryItem(
            id=record.id,
            product_id=record.product_id,
            location_id=record.location_id,
            product=product.summary(),
            product_type=product.type,
            quantity=record.quantity,
            reserved_quantity=record.reserved_quantity,
            available_quantity=record.available_quantity,
        )

    def query(
        self,
        location_id: str,
        *,
        search: Optional[str] = None,
        product_type: Optional[ProductType] = None,
        page: int = 0,
        size: int = 20,
        sort_by: str = "createdAt",
        sort_direction: str = "desc",
    ) -> InventoryPage:
        if location_id not in self.locations:
            raise StoreError("Location not found", 404)
        needle = (search or "").strip().lower()
        records = []
        for record in self._stock.values():
            if record.location_id != location_id:
                continue
            product = self.products.get(record.product_id)
            if product is None:
                continue
            if product_type is not None and product.type is not product_type:
                continue
            if needle and not product.matches(needle):
                continue
            records.append(record)

        if sort_by not in SORT_FIELDS:
            sort_by = "createdAt"
        key_attr = {
            "createdAt": "created_at",
            "quantity": "quantity",
            "availableQuantity": "available_quantity",
        }[sort_by]
        records.sort(key=lambda r: getattr(r, key_attr), reverse=sort_direction.lower() == "desc")

        size = max(1, size)
        start = page * size
        content = [self._to_item(r) for r in records[start:start + size]]
        return InventoryPage(
            content=content,
            total_elements=len(records),
            total_pages=math.ceil(len(records) / size),
            page=page,
            size=size,
        )

    def _record(self, product_id: str, location_id: str) -> StockRecord:
        record = self._stock.get((product_id, location_id))
        if record is None:
            raise StoreError("Inventory not found", 404)
        return record

    def reserve(self, product_id: str, location_id: str, quantity: int) -> InventoryItem:
        record = self._record(product_id, location_id)
        if quantity > record.available_quantity:
            raise StoreError("Insufficient available quantity", 400)
        record.reserved_quantity += quantity
        logger.info("reserve product=%s loc=%s qty=%s", product_id, location_id, quantity)
        return self._to_item(record)

    def release(self, product_id: str, location_id: str, quantity: int) -> InventoryItem:
        record = self._record(product_id, location_id)
        record.reserved_quantity = max(0, record.reserved_quantity - quantity)
        logger.info("release product=%s loc=%s qty=%s", product_id, location_id, quantity)
        return self._to_item(record)

    def stock_count(self) -> int:
        return len(self._stock)


class InMemoryInventoryFetcher:
    """Fetcher backed by an :class:`InventoryStore`.

    ``latency_ms`` simulates network time. Tests can queue per-call delays
    with :meth:`delay_next` and failures with :meth:`fail_next`; every call is
    recorded in :attr:`calls` as ``(location_id, params)``.
    """

    def __init__(
        self,
        store: InventoryStore,
        *,
        latency_ms: int = settings.mock_latency_ms,
        forbidden_locations: Optional[set] = None,
    ) -> None:
        self.store = store
        self.latency_ms = latency_ms
        self.forbidden_locations = set(forbidden_locations or ())
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._delays: Deque[float] = deque()
        self._failures: Deque[BaseException] = deque()

    def delay_next(self, *seconds: float) -> None:
        self._delays.extend(seconds)

    def fail_next(self, *errors: BaseException) -> None:
        self._failures.extend(errors)

    def searches(self) -> List[Optional[str]]:
        return [params.get("search") for _, params in self.calls]

    async def fetch_page(
        self,
        location_id: str,
        params: Dict[str, Any],
        scope: Optional[RequestScope] = None,
    ) -> InventoryPage:
        self.calls.append((location_id, dict(params)))
        delay = self._delays.popleft() if self._delays else self.latency_ms / 1000
        if delay > 0:
            await asyncio.sleep(delay)
        if scope is not None:
            scope.raise_if_cancelled()
        if self._failures:
            raise self._failures.popleft()
        if location_id in self.forbidden_locations:
            raise FetchError.from_status(403, "Access denied")
        product_type = params.get("productType")
        try:
            return self.store.query(
                location_id,
                search=params.get("search"),
                product_type=ProductType(product_type) if product_type else None,
                page=int(params.get("page", 0)),
                size=int(params.get("size", settings.page_size)),
                sort_by=params.get("sortBy", "createdAt"),
                sort_direction=params.get("sortDirection", "desc"),
            )
        except StoreError as exc:
            raise FetchError.from_status(exc.status, str(exc)) from exc


def seed_demo_store() -> InventoryStore:
    """Small optician-chain catalog with a mix of in-stock and sold-out rows."""
    store = InventoryStore()
    store.add_location(Location("L1", "Main Street Store"))
    store.add_location(Location("L2", "Riverside Store"))
    store.add_location(Location("W1", "Central Warehouse", type="WAREHOUSE"))

    products = [
        Product("p-001", ProductType.FRAME, "RB3025", brand="Ray-Ban", model="RB3025 Aviator",
                sku="RB-3025-58", color="Gold", size="58"),
        Product("p-002", ProductType.FRAME, "RB5154", brand="Ray-Ban", model="RB5154 Clubmaster",
                sku="RB-5154-51", color="Black", size="51"),
        Product("p-003", ProductType.FRAME, "OX8046", brand="Oakley", model="OX8046 Airdrop",
                sku="OX-8046-55", color="Satin Black", size="55"),
        Product("p-004", ProductType.SUNGLASSES, "OO9208", brand="Oakley", model="Radar EV",
                sku="OO-9208-38", color="Prizm Road", size="38"),
        Product("p-005", ProductType.CONTACT_LENS, "Acuvue Oasys", brand="Johnson & Johnson",
                model="Acuvue Oasys", sku="JJ-AO-150", lens_type="BI_WEEKLY", power="-1.50"),
        Product("p-006", ProductType.CONTACT_LENS, "Dailies Total1", brand="Alcon",
                model="Dailies Total1", sku="AL-DT1-200", lens_type="DAILY", power="-2.00"),
        Product("p-007", ProductType.SOLUTION, "Opti-Free", brand="Alcon", model="Opti-Free PureMoist",
                sku="AL-OF-300", volume=300),
        Product("p-008", ProductType.OTHER, "Microfiber cloth", brand="Zeiss", sku="ZS-CLOTH",
                notes="Lens cleaning cloth"),
    ]
    for product in products:
        store.add_product(product)

    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stock = [
        ("p-001", "L1", 4, 0),
        ("p-002", "L1", 2, 2),
        ("p-003", "L1", 5, 1),
        ("p-004", "L1", 3, 0),
        ("p-005", "L1", 12, 2),
        ("p-006", "L1", 0, 0),
        ("p-007", "L1", 7, 0),
        ("p-008", "L1", 20, 0),
        ("p-001", "L2", 1, 0),
        ("p-003", "L2", 0, 0),
        ("p-001", "W1", 40, 5),
        ("p-002", "W1", 25, 0),
        ("p-005", "W1", 80, 10),
    ]
    for offset, (product_id, location_id, quantity, reserved) in enumerate(stock):
        store.set_stock(product_id, location_id, quantity, reserved, created_at=base + timedelta(days=offset))
    return store
