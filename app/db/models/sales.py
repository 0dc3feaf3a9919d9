"""
MODULE: SALES ORDERS
Customer orders whose lines drive material demand through the BOM
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import String, Date, DateTime, Integer, ForeignKey, Enum, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, utcnow
from app.db.models.catalog import Product

__all__ = ["SalesOrderStatus", "ACTIVE_SALES_ORDER_STATUSES", "SalesOrder", "SalesOrderLine"]


class SalesOrderStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Only these statuses create material demand
ACTIVE_SALES_ORDER_STATUSES = (SalesOrderStatus.RECEIVED, SalesOrderStatus.IN_PROGRESS)


class SalesOrder(Base, HasId, HasCreatedAt):
    __tablename__ = "sales_order"

    order_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    project: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[SalesOrderStatus] = mapped_column(
        Enum(SalesOrderStatus, native_enum=False, length=16),
        default=SalesOrderStatus.RECEIVED,
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    lines: Mapped[list["SalesOrderLine"]] = relationship(back_populates="sales_order", cascade="all, delete-orphan")


class SalesOrderLine(Base, HasId, HasCreatedAt):
    __tablename__ = "sales_order_line"

    sales_order_id: Mapped[str] = mapped_column(ForeignKey("sales_order.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("mdm_product.id"), nullable=False, index=True)
    order_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    produced_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    sales_order: Mapped[SalesOrder] = relationship(back_populates="lines")
    product: Mapped[Product] = relationship()


Index("ix_so_line_product_order", SalesOrderLine.product_id, SalesOrderLine.sales_order_id)
