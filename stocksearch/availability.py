"""Availability filtering and pick-list labels for inventory items."""
from __future__ import annotations

from typing import Iterable, List, Optional

from .models import InventoryItem, ProductSummary, ProductType

LENS_TYPE_LABELS = {
    "DAILY": "Daily",
    "BI_WEEKLY": "Bi-weekly",
    "MONTHLY": "Monthly",
}


def is_sellable(item: InventoryItem) -> bool:
    return item.product is not None and item.available_quantity > 0


def filter_sellable(items: Iterable[InventoryItem]) -> List[InventoryItem]:
    """Drop items that cannot be sold or transferred right now.

    Sales and transfer flows rely on every listed item having
    ``available_quantity > 0``.
    """
    return [item for item in items if is_sellable(item)]


def _lens_type_label(value: Optional[str]) -> str:
    if not value:
        return ""
    return LENS_TYPE_LABELS.get(value, value)


def _volume(product: ProductSummary) -> str:
    value = product.volume if product.volume is not None else product.capacity
    if value is None:
        return ""
    return f"{value:g}"


def build_product_label(item: InventoryItem, product_type: Optional[ProductType] = None) -> str:
    """One-line label with a stock suffix, e.g. ``"Ray-Ban RB3025 - 58 - Gold (4 pcs)"``."""
    product = item.product or ProductSummary()
    brand = product.brand.name if product.brand and product.brand.name else ""
    stock_suffix = f" ({item.available_quantity} pcs)"
    kind = product_type or item.product_type

    if kind in (ProductType.FRAME, ProductType.SUNGLASSES):
        label = f"{brand} {product.model or ''} - {product.size or ''} - {product.color or ''}"
    elif kind is ProductType.CONTACT_LENS:
        label = f"{brand} {product.model or ''} - {_lens_type_label(product.lens_type)} - {product.power or ''}"
    elif kind is ProductType.SOLUTION:
        label = f"{brand} - {_volume(product)} ml"
    else:
        label = f"{brand} {product.model or product.name or ''}"
    return label.strip() + stock_suffix


def format_product_details(product: ProductSummary, product_type: Optional[ProductType] = None) -> str:
    if product_type in (ProductType.FRAME, ProductType.SUNGLASSES):
        return f"Size: {product.size or '-'}, Color: {product.color or '-'}"
    if product_type is ProductType.CONTACT_LENS:
        return f"Type: {_lens_type_label(product.lens_type) or '-'}, Power: {product.power or '-'}"
    if product_type is ProductType.SOLUTION:
        return f"Volume: {_volume(product) or '-'} (ml)"
    return product.notes or "-"
