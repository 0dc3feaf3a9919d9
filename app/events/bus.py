from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.db.models.common import utcnow
from app.events.outbox import OutboxEvent


def publish(
    db: Session,
    topic: str,
    payload: dict,
    *,
    entity: tuple[str, str] | None = None,
    available_at: datetime | None = None,
    commit: bool = False,
) -> OutboxEvent:
    """Write an event to the outbox.

    The row joins the caller's unit of work unless ``commit`` is set, so
    it is committed or rolled back together with the change it describes.
    """
    entity_type, entity_id = entity if entity else (None, None)
    evt = OutboxEvent(
        topic=topic,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload or {},
        available_at=available_at or utcnow(),
        delivered=False,
        attempt_count=0,
    )
    db.add(evt)
    if commit:
        db.commit()
        db.refresh(evt)
    return evt
