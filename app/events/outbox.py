from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasCreatedAt, HasId, utcnow

__all__ = ["OutboxEvent"]


class OutboxEvent(Base, HasId, HasCreatedAt):
    """Transactional outbox.

    Stock movements, reservations, purchase orders and MRP runs insert a row
    here in the same unit of work as the change they describe, so an event
    exists if and only if the change was committed. ``entity_type`` and
    ``entity_id`` name the row the event is about (a part, an order, a run)
    so consumers can replay one entity's history in order.
    """

    __tablename__ = "outbox_event"

    topic: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # part|purchase_order|sales_order|mrp_run
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_outbox_entity", OutboxEvent.entity_type, OutboxEvent.entity_id, OutboxEvent.created_at)
Index("ix_outbox_delivery", OutboxEvent.delivered, OutboxEvent.available_at)
