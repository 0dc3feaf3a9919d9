"""
MODULE: MASTER DATA
Suppliers, parts (purchased components), products and bills of materials
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, Numeric, ForeignKey, JSON, Boolean, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt

__all__ = ["Supplier", "Part", "Product", "BomItem"]


class Supplier(Base, HasId, HasCreatedAt):
    __tablename__ = "mdm_supplier"

    supplier_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    lead_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)


class Part(Base, HasId, HasCreatedAt):
    """
    Purchased component tracked in inventory.
    Planning fields (safety stock, lead time, MOQ) are editable by planners;
    part_code is the immutable business identity.
    """
    __tablename__ = "mdm_part"

    part_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    part_name: Mapped[str] = mapped_column(String(256), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="EA", nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=0, nullable=False)

    # Planning
    safety_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_point: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_order_qty: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    lead_time_days: Mapped[int] = mapped_column(Integer, default=7, nullable=False)

    supplier_id: Mapped[str | None] = mapped_column(ForeignKey("mdm_supplier.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    supplier: Mapped[Optional[Supplier]] = relationship()


class Product(Base, HasId, HasCreatedAt):
    __tablename__ = "mdm_product"

    product_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(256), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), default="EA", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class BomItem(Base, HasId, HasCreatedAt):
    """One (product, part) line of a bill of materials."""
    __tablename__ = "mdm_bom_item"

    product_id: Mapped[str] = mapped_column(ForeignKey("mdm_product.id"), nullable=False, index=True)
    part_id: Mapped[str] = mapped_column(ForeignKey("mdm_part.id"), nullable=False, index=True)

    quantity_per_unit: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=1, nullable=False)
    loss_rate: Mapped[Decimal] = mapped_column(Numeric(10, 6), default=0, nullable=False)  # 0.05 == 5% scrap

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    product: Mapped[Product] = relationship()
    part: Mapped[Part] = relationship()


Index("ix_bom_item_product_part", BomItem.product_id, BomItem.part_id, unique=True)
