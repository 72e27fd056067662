"""FastAPI application serving the in-memory inventory backend."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from .backend import InventoryStore, StoreError, seed_demo_store
from .config import settings
from .models import ApiEnvelope, ProductType, StockMovement

API_PREFIX = "/api/v1"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    # ``force=True`` replaces uvicorn's default handlers so our records share
    # one format.
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        logging.getLogger(name).setLevel(LOG_LEVEL)
    logger.info("Logging configured at %s", settings.log_level.upper())


def _envelope(data: Any = None, *, error: Optional[str] = None) -> dict:
    return ApiEnvelope(
        success=error is None,
        data=data,
        error=error,
        timestamp=datetime.now(timezone.utc).isoformat(),
    ).model_dump()


def _error(exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=_envelope(error=str(exc)))


def create_app(store: Optional[InventoryStore] = None) -> FastAPI:
    inventory = store if store is not None else seed_demo_store()
    app = FastAPI(title="Inventory Backend")
    app.state.store = inventory

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "locations": len(inventory.locations),
            "stock_records": inventory.stock_count(),
        }

    @app.get(API_PREFIX + "/inventory/location/{location_id}")
    async def inventory_by_location(
        location_id: str,
        page: int = Query(0, ge=0),
        size: int = Query(20, ge=1, le=500),
        sort_by: str = Query("createdAt", alias="sortBy"),
        sort_direction: str = Query("desc", alias="sortDirection"),
        search: Optional[str] = None,
        product_type: Optional[ProductType] = Query(None, alias="productType"),
    ):
        try:
            result = inventory.query(
                location_id,
                search=search,
                product_type=product_type,
                page=page,
                size=size,
                sort_by=sort_by,
                sort_direction=sort_direction,
            )
        except StoreError as exc:
            return _error(exc)
        logger.info(
            "inventory loc=%s search=%r type=%s hits=%s",
            location_id,
            search,
            product_type.value if product_type else None,
            result.total_elements,
        )
        return _envelope(result.model_dump(by_alias=True, mode="json"))

    @app.post(API_PREFIX + "/inventory/reserve")
    async def reserve(movement: StockMovement):
        try:
            item = inventory.reserve(movement.product_id, movement.location_id, movement.quantity)
        except StoreError as exc:
            return _error(exc)
        return _envelope(item.model_dump(by_alias=True, mode="json"))

    @app.post(API_PREFIX + "/inventory/release")
    async def release(movement: StockMovement):
        try:
            item = inventory.release(movement.product_id, movement.location_id, movement.quantity)
        except StoreError as exc:
            return _error(exc)
        return _envelope(item.model_dump(by_alias=True, mode="json"))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8080)
