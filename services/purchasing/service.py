from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from app.db.models.catalog import Part
from app.db.models.mrp import MrpResult, MrpResultStatus
from app.db.models.purchasing import (
    OPEN_PURCHASE_ORDER_STATUSES,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderLineStatus,
    PurchaseOrderStatus,
)
from app.db.models.sales import SalesOrder
from app.db.models.inventory import TransactionType
from app.events.bus import publish
from services.inventory.errors import (
    InvalidQuantity,
    MissingSupplier,
    OrderNotReceivable,
    PartNotFound,
    PurchaseOrderNotFound,
)
from services.inventory.ledger import apply_transaction
from services.mrp.netting import incoming_quantity

logger = logging.getLogger(__name__)

DEFAULT_SUPPLIER_LEAD_TIME_DAYS = 7


@dataclass
class ReceiptLine:
    line_id: str
    received_qty: int


@dataclass
class MrpOrderItem:
    part_id: str
    order_qty: int
    sales_order_id: str | None = None


def incoming_quantities(db: Session, part_ids: Iterable[str]) -> dict[str, int]:
    """Outstanding quantity on open purchase orders, per part."""
    part_ids = list(part_ids)
    if not part_ids:
        return {}
    rows = (db.query(PurchaseOrderLine.part_id, PurchaseOrderLine.order_qty, PurchaseOrderLine.received_qty)
            .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.order_id)
            .filter(PurchaseOrder.status.in_(OPEN_PURCHASE_ORDER_STATUSES))
            .filter(PurchaseOrderLine.status != PurchaseOrderLineStatus.CANCELLED)
            .filter(PurchaseOrderLine.part_id.in_(part_ids))
            .all())
    grouped: dict[str, list[tuple[int, int]]] = defaultdict(list)
    for part_id, ordered, received in rows:
        grouped[part_id].append((ordered, received or 0))
    return {part_id: incoming_quantity(lines) for part_id, lines in grouped.items()}


def _line_status(received: int, ordered: int, current: PurchaseOrderLineStatus) -> PurchaseOrderLineStatus:
    if received == 0:
        return current
    if received < ordered:
        return PurchaseOrderLineStatus.PARTIAL
    return PurchaseOrderLineStatus.COMPLETED


def receive_purchase_order(
    db: Session,
    order_id: str,
    receipts: list[ReceiptLine],
    *,
    performed_by: str | None = None,
) -> PurchaseOrder:
    """Book received quantities and post one INBOUND ledger entry per line, in one commit."""
    if not receipts:
        raise InvalidQuantity("At least one receipt line is required")
    try:
        order = db.query(PurchaseOrder).filter(PurchaseOrder.id == order_id).with_for_update().first()
        if not order:
            raise PurchaseOrderNotFound(order_id)
        if order.status not in OPEN_PURCHASE_ORDER_STATUSES:
            raise OrderNotReceivable(f"Purchase order {order.order_code} is {order.status.value} and cannot be received")

        lines = {ln.id: ln for ln in order.lines}
        for receipt in receipts:
            line = lines.get(receipt.line_id)
            if line is None:
                raise InvalidQuantity(f"Line {receipt.line_id} does not belong to {order.order_code}")
            if line.status is PurchaseOrderLineStatus.CANCELLED:
                raise OrderNotReceivable(f"Line {receipt.line_id} on {order.order_code} is cancelled")
            if receipt.received_qty < 0:
                raise InvalidQuantity("Received quantity cannot be negative")
            new_received = (line.received_qty or 0) + receipt.received_qty
            if new_received > line.order_qty:
                raise InvalidQuantity(
                    f"Receipt exceeds ordered quantity on {order.order_code} "
                    f"(ordered {line.order_qty}, received {line.received_qty}, receiving {receipt.received_qty})"
                )
            line.received_qty = new_received
            line.status = _line_status(new_received, line.order_qty, line.status)

            if receipt.received_qty > 0:
                apply_transaction(
                    db,
                    part_id=line.part_id,
                    transaction_type=TransactionType.INBOUND,
                    quantity=receipt.received_qty,
                    reference_type="PURCHASE_ORDER",
                    reference_id=order.order_code,
                    reason="Purchase order receipt",
                    notes=f"PO {order.order_code}",
                    performed_by=performed_by,
                    unit_price=line.unit_price,
                    commit=False,
                )

        if all(ln.status in (PurchaseOrderLineStatus.COMPLETED, PurchaseOrderLineStatus.CANCELLED) for ln in order.lines):
            order.status = PurchaseOrderStatus.RECEIVED
            order.actual_date = date.today()
        elif any((ln.received_qty or 0) > 0 for ln in order.lines):
            order.status = PurchaseOrderStatus.PARTIAL

        publish(db, "purchasing.order.received", entity=("purchase_order", order.id), payload={
            "order_id": order.id,
            "order_code": order.order_code,
            "status": order.status.value,
            "lines": [{"line_id": r.line_id, "received_qty": r.received_qty} for r in receipts],
        })
        db.commit()
        db.refresh(order)
    except Exception:
        db.rollback()
        raise
    logger.info("Received %s lines on %s, order now %s", len(receipts), order.order_code, order.status.value)
    return order


def _next_order_codes(db: Session, on: date):
    prefix = f"PO{on:%y%m}"
    last = (db.query(PurchaseOrder.order_code)
            .filter(PurchaseOrder.order_code.like(f"{prefix}-%"))
            .order_by(PurchaseOrder.order_code.desc())
            .first())
    n = int(last[0].split("-")[1]) if last else 0
    while True:
        n += 1
        yield f"{prefix}-{n:04d}"


def create_orders_from_mrp(
    db: Session,
    items: list[MrpOrderItem],
    *,
    sales_order_id: str | None = None,
    skip_draft: bool = False,
    order_date: date | None = None,
    expected_date: date | None = None,
    notes: str | None = None,
) -> list[PurchaseOrder]:
    """Turn selected MRP suggestions into purchase orders, one per supplier and project."""
    if not items:
        raise InvalidQuantity("At least one item is required")
    order_date = order_date or date.today()

    try:
        parts = {p.id: p for p in db.query(Part).filter(Part.id.in_([i.part_id for i in items])).all()}
        so_ids = {i.sales_order_id or sales_order_id for i in items} - {None}
        projects = {
            so.id: so.project
            for so in db.query(SalesOrder).filter(SalesOrder.id.in_(list(so_ids))).all()
        } if so_ids else {}

        groups: dict[tuple[str, str | None], list[tuple[Part, MrpOrderItem, str | None]]] = {}
        for item in items:
            part = parts.get(item.part_id)
            if part is None:
                raise PartNotFound(item.part_id)
            if not part.supplier_id or part.supplier is None:
                raise MissingSupplier(f"Part {part.part_code} has no supplier")
            if item.order_qty <= 0:
                raise InvalidQuantity(f"Order quantity for {part.part_code} must be positive")
            so_id = item.sales_order_id or sales_order_id
            key = (part.supplier_id, projects.get(so_id) if so_id else None)
            groups.setdefault(key, []).append((part, item, so_id))

        codes = _next_order_codes(db, order_date)
        created: list[PurchaseOrder] = []
        for (supplier_id, project), group in groups.items():
            supplier = group[0][0].supplier
            lead = supplier.lead_time_days or DEFAULT_SUPPLIER_LEAD_TIME_DAYS
            order = PurchaseOrder(
                order_code=next(codes),
                supplier_id=supplier_id,
                project=project,
                order_date=order_date,
                expected_date=expected_date or (order_date + timedelta(days=lead)),
                status=PurchaseOrderStatus.ORDERED if skip_draft else PurchaseOrderStatus.DRAFT,
                notes=notes or (f"MRP order ({len(group)} items) [{project}]" if project else f"MRP order ({len(group)} items)"),
            )
            total = Decimal("0")
            for part, item, so_id in group:
                price = Decimal(str(part.unit_price or 0))
                line_total = price * item.order_qty
                total += line_total
                order.lines.append(PurchaseOrderLine(
                    part_id=part.id,
                    sales_order_id=so_id,
                    order_qty=item.order_qty,
                    unit_price=price,
                    total_price=line_total,
                    status=PurchaseOrderLineStatus.ORDERED if skip_draft else PurchaseOrderLineStatus.PENDING,
                ))
            order.total_amount = total
            db.add(order)
            created.append(order)

        q = (db.query(MrpResult)
             .filter(MrpResult.part_id.in_(list(parts)))
             .filter(MrpResult.status == MrpResultStatus.PENDING))
        if so_ids:
            q = q.filter(MrpResult.sales_order_id.in_(list(so_ids)))
        q.update({MrpResult.status: MrpResultStatus.ORDERED}, synchronize_session=False)

        db.flush()
        for order in created:
            publish(db, "purchasing.order.created", entity=("purchase_order", order.id), payload={
                "order_id": order.id,
                "order_code": order.order_code,
                "supplier_id": order.supplier_id,
                "status": order.status.value,
                "total_amount": str(order.total_amount),
            })
        db.commit()
        for order in created:
            db.refresh(order)
    except Exception:
        db.rollback()
        raise
    logger.info("Created %s purchase orders from MRP suggestions", len(created))
    return created
