from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.db.models.catalog import Product
from app.db.models.sales import SalesOrder, SalesOrderLine, SalesOrderStatus
from app.events.bus import publish
from services.mrp.engine import calculate_mrp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sales", tags=["sales"])


class OrderLineIn(BaseModel):
    product_id: str
    order_qty: int = Field(..., gt=0)


class OrderIn(BaseModel):
    order_code: str = Field(..., max_length=32)
    due_date: date | None = None
    project: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    created_by: str | None = None
    lines: list[OrderLineIn] = Field(..., min_length=1)
    run_mrp: bool = True


class OrderStatusIn(BaseModel):
    status: SalesOrderStatus


def _order_out(o: SalesOrder) -> dict:
    return {
        "id": o.id,
        "order_code": o.order_code,
        "due_date": o.due_date,
        "project": o.project,
        "status": o.status.value,
        "lines": [{"id": ln.id, "product_id": ln.product_id, "order_qty": ln.order_qty} for ln in o.lines],
    }


def _get_order(db: Session, order_id: str) -> SalesOrder:
    o = db.query(SalesOrder).filter(SalesOrder.id == order_id).first()
    if not o:
        raise HTTPException(404, "Sales order not found")
    return o


@router.get("/orders")
def list_orders(db: Session = Depends(get_db), limit: int = 200):
    rows = db.query(SalesOrder).order_by(SalesOrder.created_at.desc()).limit(limit).all()
    return [_order_out(o) for o in rows]


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return _order_out(_get_order(db, order_id))


@router.post("/orders")
def create_order(payload: OrderIn, db: Session = Depends(get_db)):
    if db.query(SalesOrder).filter(SalesOrder.order_code == payload.order_code).first():
        raise HTTPException(409, "Order code already exists")
    product_ids = {ln.product_id for ln in payload.lines}
    found = {p.id for p in db.query(Product.id).filter(Product.id.in_(product_ids)).all()}
    missing = product_ids - found
    if missing:
        raise HTTPException(409, f"Unknown product ids: {sorted(missing)}")

    o = SalesOrder(
        order_code=payload.order_code,
        due_date=payload.due_date,
        project=payload.project,
        notes=payload.notes,
        created_by=payload.created_by,
    )
    for ln in payload.lines:
        o.lines.append(SalesOrderLine(product_id=ln.product_id, order_qty=ln.order_qty))
    db.add(o)
    db.flush()
    publish(db, "sales.order.created", entity=("sales_order", o.id), payload={"id": o.id, "order_code": o.order_code})
    db.commit()
    db.refresh(o)

    out = _order_out(o)
    if payload.run_mrp:
        outcome = calculate_mrp(db, sales_order_ids=[o.id])
        out["mrp"] = {"run_id": outcome.run_id, "summary": outcome.summary.as_dict()}
        logger.info("Sales order %s created, MRP run %s", o.order_code, outcome.run_id)
    return out


@router.patch("/orders/{order_id}/status")
def set_order_status(order_id: str, payload: OrderStatusIn, db: Session = Depends(get_db)):
    o = _get_order(db, order_id)
    o.status = payload.status
    publish(db, "sales.order.status_changed", entity=("sales_order", o.id), payload={"id": o.id, "status": o.status.value})
    db.commit()
    db.refresh(o)

    # Inactive orders have no demand, so this drops their results
    outcome = calculate_mrp(db, sales_order_ids=[o.id])
    logger.info("Sales order %s now %s, MRP run %s", o.order_code, o.status.value, outcome.run_id)
    out = _order_out(o)
    out["mrp"] = {"run_id": outcome.run_id, "summary": outcome.summary.as_dict()}
    return out
