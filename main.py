from __future__ import annotations

import asyncio
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.db.base import Base
from app.db.session import engine

# Register models
from app.db import models  # noqa: F401

from services.admin.events_api import router as events_admin_router
from services.inventory.api import router as inventory_router
from services.inventory.errors import InventoryError
from services.mdm.api import router as master_router
from services.mrp.api import router as mrp_router
from services.purchasing.api import router as purchasing_router
from services.sales.api import router as sales_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

EVENTS_DISPATCHER_ENABLED = os.getenv("EVENTS_DISPATCHER_ENABLED", "true").lower() in ("1", "true", "yes")
EVENTS_POLL_INTERVAL_SECONDS = float(os.getenv("EVENTS_POLL_INTERVAL_SECONDS", "1.0"))

app = FastAPI(title="Inventory Ledger + MRP")


@app.exception_handler(InventoryError)
async def _inventory_error(request: Request, exc: InventoryError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def _startup():
    # Dev-friendly schema creation (migrations are available for real upgrades)
    Base.metadata.create_all(bind=engine)

    if EVENTS_DISPATCHER_ENABLED:
        from app.events.dispatcher import run_dispatcher_forever

        asyncio.create_task(run_dispatcher_forever(poll_interval_seconds=EVENTS_POLL_INTERVAL_SECONDS))


app.include_router(master_router)
app.include_router(inventory_router)
app.include_router(sales_router)
app.include_router(purchasing_router)
app.include_router(mrp_router)
app.include_router(events_admin_router)


@app.get("/health")
def health():
    return {"ok": True}
