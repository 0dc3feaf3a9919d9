"""
MODULE: INVENTORY LEDGER
Per-part stock records and the movement ledger that drives them
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Numeric, ForeignKey, Enum, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.models.common import HasId, HasCreatedAt, utcnow
from app.db.models.catalog import Part

__all__ = ["TransactionType", "InventoryRecord", "StockTransaction"]


class TransactionType(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"


class InventoryRecord(Base, HasId, HasCreatedAt):
    """
    Materialized projection of the ledger for one part.

    current_qty always equals after_qty of the part's latest ledger entry
    (zero when there is none). Only the ledger and the reservation service
    write to this table.
    """
    __tablename__ = "inv_record"

    part_id: Mapped[str] = mapped_column(ForeignKey("mdm_part.id"), unique=True, nullable=False, index=True)

    current_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Highest ledger sequence handed out for this part (never reused)
    last_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_inbound_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_outbound_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    part: Mapped[Part] = relationship()


class StockTransaction(Base, HasId, HasCreatedAt):
    __tablename__ = "inv_transaction"

    transaction_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    part_id: Mapped[str] = mapped_column(ForeignKey("mdm_part.id"), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, length=16),
        nullable=False,
        index=True,
    )
    # Positive for INBOUND/OUTBOUND/TRANSFER, signed delta for ADJUSTMENT
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    before_qty: Mapped[int] = mapped_column(Integer, nullable=False)
    after_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # PURCHASE_ORDER|SALES_ORDER|AUDIT|PICKING
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    part: Mapped[Optional[Part]] = relationship()


Index("ix_inv_txn_part_seq", StockTransaction.part_id, StockTransaction.sequence, unique=True)
