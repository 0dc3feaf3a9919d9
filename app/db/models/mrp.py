"""
MODULE: MATERIAL REQUIREMENTS PLANNING
Per-run planning output: one row per (part, sales order) demand pairing
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import String, DateTime, Date, Integer, ForeignKey, Enum, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt
from app.db.models.catalog import Part
from app.db.models.sales import SalesOrder

__all__ = ["Urgency", "MrpResultStatus", "MrpResult", "MrpRun"]


class Urgency(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class MrpResultStatus(str, enum.Enum):
    PENDING = "PENDING"
    ORDERED = "ORDERED"
    COMPLETED = "COMPLETED"
    DISMISSED = "DISMISSED"


class MrpResult(Base, HasId, HasCreatedAt):
    """Owned by the MRP engine: replaced wholesale for its scope on every run."""
    __tablename__ = "mrp_result"

    run_id: Mapped[str | None] = mapped_column(ForeignKey("mrp_run.id"), nullable=True, index=True)
    part_id: Mapped[str] = mapped_column(ForeignKey("mdm_part.id"), nullable=False, index=True)
    sales_order_id: Mapped[str | None] = mapped_column(ForeignKey("sales_order.id"), nullable=True, index=True)
    calculation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    gross_requirement: Mapped[int] = mapped_column(Integer, nullable=False)

    # Stock snapshot at calculation time
    current_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    incoming_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    safety_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    net_requirement: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_order_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_order_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    urgency: Mapped[Urgency] = mapped_column(Enum(Urgency, native_enum=False, length=16), nullable=False, index=True)
    status: Mapped[MrpResultStatus] = mapped_column(
        Enum(MrpResultStatus, native_enum=False, length=16),
        default=MrpResultStatus.PENDING,
        nullable=False,
        index=True,
    )

    part: Mapped[Part] = relationship()
    sales_order: Mapped[Optional[SalesOrder]] = relationship()


Index("ix_mrp_result_part_so", MrpResult.part_id, MrpResult.sales_order_id)


class MrpRun(Base, HasId, HasCreatedAt):
    __tablename__ = "mrp_run"

    status: Mapped[str] = mapped_column(String(24), default="DONE", nullable=False, index=True)  # DONE|FAILED
    params: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    summary: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    error: Mapped[str | None] = mapped_column(String(512), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
