"""Gross requirements: sales order lines exploded through the BOM.

Demand is kept per (part, sales order) so every shortage traces back to
the order that caused it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from app.db.models.catalog import BomItem, Part
from app.db.models.sales import ACTIVE_SALES_ORDER_STATUSES, SalesOrder, SalesOrderLine
from services.mrp.netting import ZERO, to_decimal


@dataclass(frozen=True)
class MrpScope:
    part_ids: tuple[str, ...] | None = None
    sales_order_ids: tuple[str, ...] | None = None

    @classmethod
    def of(cls, part_ids: Iterable[str] | None = None, sales_order_ids: Iterable[str] | None = None) -> "MrpScope":
        return cls(
            part_ids=tuple(part_ids) if part_ids is not None else None,
            sales_order_ids=tuple(sales_order_ids) if sales_order_ids is not None else None,
        )


@dataclass
class Demand:
    part_id: str
    sales_order_id: str
    sales_order_code: str
    due_date: date | None
    requirement: Decimal = field(default=ZERO)


def bom_requirement(order_qty, quantity_per_unit, loss_rate) -> Decimal:
    return to_decimal(order_qty) * to_decimal(quantity_per_unit) * (1 + to_decimal(loss_rate))


def get_active_parts(db: Session, part_ids: tuple[str, ...] | None = None) -> list[Part]:
    q = db.query(Part).filter(Part.is_active == True)  # noqa: E712
    if part_ids is not None:
        q = q.filter(Part.id.in_(part_ids))
    return q.order_by(Part.part_code.asc()).all()


def aggregate_requirements(db: Session, scope: MrpScope) -> dict[tuple[str, str], Demand]:
    q = (db.query(
            BomItem.part_id,
            BomItem.quantity_per_unit,
            BomItem.loss_rate,
            SalesOrderLine.order_qty,
            SalesOrder.id,
            SalesOrder.order_code,
            SalesOrder.due_date,
         )
         .join(Part, Part.id == BomItem.part_id)
         .join(SalesOrderLine, SalesOrderLine.product_id == BomItem.product_id)
         .join(SalesOrder, SalesOrder.id == SalesOrderLine.sales_order_id)
         .filter(Part.is_active == True)  # noqa: E712
         .filter(BomItem.is_active == True)  # noqa: E712
         .filter(SalesOrder.status.in_(ACTIVE_SALES_ORDER_STATUSES)))
    if scope.part_ids is not None:
        q = q.filter(BomItem.part_id.in_(scope.part_ids))
    if scope.sales_order_ids is not None:
        q = q.filter(SalesOrder.id.in_(scope.sales_order_ids))

    demands: dict[tuple[str, str], Demand] = {}
    for part_id, qty_per, loss_rate, order_qty, so_id, so_code, due_date in q.order_by(
        BomItem.part_id, SalesOrder.order_code, SalesOrderLine.id
    ):
        key = (part_id, so_id)
        demand = demands.get(key)
        if demand is None:
            # Due date belongs to the order, so it is taken once per pair
            demand = Demand(part_id=part_id, sales_order_id=so_id, sales_order_code=so_code, due_date=due_date)
            demands[key] = demand
        demand.requirement += bom_requirement(order_qty, qty_per, loss_rate)
    return demands
