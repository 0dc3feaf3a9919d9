from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.common import HasCreatedAt, HasId

__all__ = ["EventSubscription", "DEFAULT_MAX_FAILURES"]

DEFAULT_MAX_FAILURES = 20


class EventSubscription(Base, HasId, HasCreatedAt):
    """Webhook receiving ledger, purchasing and MRP events.

    topic_pattern is an exact topic ("inventory.changed"), a prefix ending
    in "." or a "prefix.*" wildcard ("mrp.*"). A subscription whose
    consecutive failures reach max_failures is switched off by the
    dispatcher and has to be re-enabled by hand.
    """

    __tablename__ = "event_subscription"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    topic_pattern: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    headers: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_failures: Mapped[int] = mapped_column(Integer, default=DEFAULT_MAX_FAILURES, nullable=False)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


Index("ix_event_sub_active", EventSubscription.is_active, EventSubscription.topic_pattern)
