from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.models.purchasing import PurchaseOrder
from app.db.session import get_db
from services.purchasing.service import MrpOrderItem, ReceiptLine, create_orders_from_mrp, receive_purchase_order

router = APIRouter(prefix="/purchasing", tags=["purchasing"])


class MrpOrderItemIn(BaseModel):
    part_id: str
    order_qty: int = Field(..., gt=0)
    sales_order_id: str | None = None


class FromMrpIn(BaseModel):
    items: list[MrpOrderItemIn] = Field(..., min_length=1)
    sales_order_id: str | None = None
    skip_draft: bool = False
    order_date: date | None = None
    expected_date: date | None = None
    notes: str | None = None


class ReceiptLineIn(BaseModel):
    line_id: str
    received_qty: int = Field(..., ge=0)


class ReceiveIn(BaseModel):
    items: list[ReceiptLineIn] = Field(..., min_length=1)
    performed_by: str | None = None


def _order_out(o: PurchaseOrder) -> dict:
    return {
        "id": o.id,
        "order_code": o.order_code,
        "supplier_id": o.supplier_id,
        "project": o.project,
        "status": o.status.value,
        "order_date": o.order_date,
        "expected_date": o.expected_date,
        "total_amount": float(o.total_amount or 0),
        "lines": [{
            "id": ln.id,
            "part_id": ln.part_id,
            "sales_order_id": ln.sales_order_id,
            "order_qty": ln.order_qty,
            "received_qty": ln.received_qty,
            "unit_price": float(ln.unit_price or 0),
            "status": ln.status.value,
        } for ln in o.lines],
    }


@router.post("/orders/from-mrp")
def orders_from_mrp(payload: FromMrpIn, db: Session = Depends(get_db)):
    orders = create_orders_from_mrp(
        db,
        [MrpOrderItem(part_id=i.part_id, order_qty=i.order_qty, sales_order_id=i.sales_order_id) for i in payload.items],
        sales_order_id=payload.sales_order_id,
        skip_draft=payload.skip_draft,
        order_date=payload.order_date,
        expected_date=payload.expected_date,
        notes=payload.notes,
    )
    return {
        "total_orders": len(orders),
        "total_items": len(payload.items),
        "total_amount": sum(float(o.total_amount or 0) for o in orders),
        "purchase_orders": [_order_out(o) for o in orders],
    }


@router.post("/orders/{order_id}/receive")
def receive(order_id: str, payload: ReceiveIn, db: Session = Depends(get_db)):
    order = receive_purchase_order(
        db,
        order_id,
        [ReceiptLine(line_id=i.line_id, received_qty=i.received_qty) for i in payload.items],
        performed_by=payload.performed_by,
    )
    return _order_out(order)
