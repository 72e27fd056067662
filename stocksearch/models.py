"""Pydantic models for inventory payloads and search state."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ErrorKind


class ProductType(str, Enum):
    FRAME = "FRAME"
    SUNGLASSES = "SUNGLASSES"
    CONTACT_LENS = "CONTACT_LENS"
    SOLUTION = "SOLUTION"
    OTHER = "OTHER"


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BrandRef(CamelModel):
    id: str | None = None
    name: str | None = None


class ProductSummary(CamelModel):
    id: str | None = None
    name: str | None = None
    model: str | None = None
    brand: BrandRef | None = None
    sku: str | None = None
    color: str | None = None
    size: str | None = None
    lens_type: str | None = None
    power: str | None = None
    volume: float | None = None
    capacity: float | None = None
    notes: str | None = None


class InventoryItem(CamelModel):
    """Stock row for one product at one location.

    ``available_quantity`` is taken as reported upstream
    (``quantity - reserved_quantity``); it is never recomputed here.
    """

    id: str | None = None
    product_id: str
    location_id: str | None = None
    product: ProductSummary | None = None
    product_type: ProductType | None = None
    quantity: int = 0
    reserved_quantity: int = 0
    available_quantity: int = 0


class InventoryPage(CamelModel):
    content: list[InventoryItem] = Field(default_factory=list)
    total_elements: int | None = None
    total_pages: int = 0
    page: int = 0
    size: int = 0


def extract_page(payload: Any) -> InventoryPage:
    """Parse a page body, unwrapping the ``{success, data, ...}`` envelope."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    return InventoryPage.model_validate(payload or {})


class ResultPage(BaseModel):
    items: list[InventoryItem] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False

    @classmethod
    def from_inventory_page(cls, page: InventoryPage) -> "ResultPage":
        total = page.total_elements if page.total_elements else len(page.content)
        return cls(items=list(page.content), total_count=total, has_more=page.total_pages > 1)


class SearchParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    location_id: Optional[str] = None
    product_type: Optional[ProductType] = None
    query: str = ""

    @property
    def key(self) -> tuple[Optional[str], Optional[ProductType]]:
        return (self.location_id, self.product_type)


class SearchPhase(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    CACHE_HIT = "cache_hit"
    FETCHING = "fetching"
    RETRYING = "retrying"
    APPLIED = "applied"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SearchState(BaseModel):
    """Snapshot published to consumers after every transition."""

    model_config = ConfigDict(frozen=True)

    query: str = ""
    results: list[InventoryItem] = Field(default_factory=list)
    is_loading: bool = False
    is_debouncing: bool = False
    error: ErrorKind | None = None
    error_message: str | None = None
    has_more: bool = False
    total_count: int = 0
    phase: SearchPhase = SearchPhase.IDLE


class ApiEnvelope(BaseModel):
    success: bool = True
    data: Any = None
    error: str | None = None
    timestamp: str


class StockMovement(CamelModel):
    product_id: str
    location_id: str
    quantity: int = Field(..., gt=0)
