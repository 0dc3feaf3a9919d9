from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.events.outbox import OutboxEvent
from app.events.subscriptions import DEFAULT_MAX_FAILURES, EventSubscription

router = APIRouter(prefix="/admin/events", tags=["admin_events"])


class SubscriptionIn(BaseModel):
    name: str = Field(default="subscription", max_length=128)
    topic_pattern: str = Field(..., min_length=1, max_length=128)
    target_url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    is_active: bool = True
    max_failures: int = Field(default=DEFAULT_MAX_FAILURES, gt=0)


class ToggleIn(BaseModel):
    is_active: bool | None = None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _sub_out(s: EventSubscription) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "topic_pattern": s.topic_pattern,
        "target_url": s.target_url,
        "headers": s.headers or {},
        "is_active": bool(s.is_active),
        "max_failures": s.max_failures,
        "failure_count": int(s.failure_count or 0),
        "last_error": s.last_error,
        "last_delivered_at": _iso(s.last_delivered_at),
        "created_at": _iso(s.created_at),
    }


@router.get("/subscriptions")
def list_subscriptions(db: Session = Depends(get_db)):
    subs = db.query(EventSubscription).order_by(EventSubscription.created_at.desc()).all()
    return [_sub_out(s) for s in subs]


@router.post("/subscriptions")
def create_subscription(payload: SubscriptionIn, db: Session = Depends(get_db)):
    s = EventSubscription(
        name=payload.name,
        topic_pattern=payload.topic_pattern,
        target_url=payload.target_url,
        headers=payload.headers,
        is_active=payload.is_active,
        max_failures=payload.max_failures,
        failure_count=0,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return _sub_out(s)


@router.post("/subscriptions/{sub_id}/toggle")
def toggle_subscription(sub_id: str, payload: ToggleIn | None = None, db: Session = Depends(get_db)):
    s = db.query(EventSubscription).filter(EventSubscription.id == sub_id).first()
    if not s:
        raise HTTPException(404, "Unknown subscription")
    wanted = payload.is_active if payload and payload.is_active is not None else not s.is_active
    s.is_active = wanted
    if wanted:
        # Re-enabling starts a fresh failure budget
        s.failure_count = 0
    db.commit()
    return {"ok": True, "id": s.id, "is_active": bool(s.is_active)}


@router.get("/outbox")
def list_outbox(
    db: Session = Depends(get_db),
    topic: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    pending_only: bool = False,
    limit: int = 100,
):
    q = db.query(OutboxEvent)
    if topic:
        q = q.filter(OutboxEvent.topic == topic)
    if entity_type:
        q = q.filter(OutboxEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(OutboxEvent.entity_id == entity_id)
    if pending_only:
        q = q.filter(OutboxEvent.delivered == False)  # noqa: E712
    rows = q.order_by(OutboxEvent.created_at.desc()).limit(limit).all()
    return [{
        "id": e.id,
        "topic": e.topic,
        "entity_type": e.entity_type,
        "entity_id": e.entity_id,
        "payload": e.payload or {},
        "delivered": bool(e.delivered),
        "attempt_count": e.attempt_count,
        "last_error": e.last_error,
        "available_at": _iso(e.available_at),
        "created_at": _iso(e.created_at),
    } for e in rows]
