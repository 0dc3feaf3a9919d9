"""
MODULE: PURCHASING
Purchase orders; open lines are the incoming quantity seen by MRP
"""

from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Date, Integer, Numeric, ForeignKey, Enum, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt
from app.db.models.catalog import Part, Supplier

__all__ = [
    "PurchaseOrderStatus",
    "PurchaseOrderLineStatus",
    "OPEN_PURCHASE_ORDER_STATUSES",
    "PurchaseOrder",
    "PurchaseOrderLine",
]


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    PARTIAL = "PARTIAL"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class PurchaseOrderLineStatus(str, enum.Enum):
    PENDING = "PENDING"
    ORDERED = "ORDERED"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Lines on these orders count as incoming stock
OPEN_PURCHASE_ORDER_STATUSES = (
    PurchaseOrderStatus.APPROVED,
    PurchaseOrderStatus.ORDERED,
    PurchaseOrderStatus.PARTIAL,
)


class PurchaseOrder(Base, HasId, HasCreatedAt):
    __tablename__ = "pur_order"

    order_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    supplier_id: Mapped[str] = mapped_column(ForeignKey("mdm_supplier.id"), nullable=False, index=True)
    project: Mapped[str | None] = mapped_column(String(128), nullable=True)

    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[PurchaseOrderStatus] = mapped_column(
        Enum(PurchaseOrderStatus, native_enum=False, length=16),
        default=PurchaseOrderStatus.DRAFT,
        nullable=False,
        index=True,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    supplier: Mapped[Supplier] = relationship()
    lines: Mapped[list["PurchaseOrderLine"]] = relationship(back_populates="order", cascade="all, delete-orphan")


class PurchaseOrderLine(Base, HasId, HasCreatedAt):
    __tablename__ = "pur_order_line"

    order_id: Mapped[str] = mapped_column(ForeignKey("pur_order.id"), nullable=False, index=True)
    part_id: Mapped[str] = mapped_column(ForeignKey("mdm_part.id"), nullable=False, index=True)
    sales_order_id: Mapped[str | None] = mapped_column(ForeignKey("sales_order.id"), nullable=True, index=True)

    order_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    received_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0, nullable=False)

    status: Mapped[PurchaseOrderLineStatus] = mapped_column(
        Enum(PurchaseOrderLineStatus, native_enum=False, length=16),
        default=PurchaseOrderLineStatus.PENDING,
        nullable=False,
    )

    order: Mapped[PurchaseOrder] = relationship(back_populates="lines")
    part: Mapped[Optional[Part]] = relationship()


Index("ix_po_line_part_order", PurchaseOrderLine.part_id, PurchaseOrderLine.order_id)
