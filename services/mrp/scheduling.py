from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from app.db.models.mrp import Urgency

# Inclusive upper bounds in days until due, checked in order
URGENCY_TIERS = (
    (0, Urgency.CRITICAL),
    (7, Urgency.HIGH),
    (14, Urgency.MEDIUM),
)


@dataclass(frozen=True)
class Schedule:
    suggested_order_date: date | None
    urgency: Urgency
    days_until_due: int | None


def days_until(due_date: date, now: datetime) -> int:
    due = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.floor((due - now) / timedelta(days=1))


def urgency_for_days(days_until_due: int | None) -> Urgency:
    if days_until_due is None:
        return Urgency.LOW
    for bound, urgency in URGENCY_TIERS:
        if days_until_due <= bound:
            return urgency
    return Urgency.LOW


def suggested_order_date(due_date: date, lead_time_days: int) -> date:
    return due_date - timedelta(days=lead_time_days or 0)


def classify(due_date: date | None, lead_time_days: int, *, suggested_qty: int, now: datetime) -> Schedule:
    days = days_until(due_date, now) if due_date else None
    order_date = suggested_order_date(due_date, lead_time_days) if due_date and suggested_qty > 0 else None
    return Schedule(suggested_order_date=order_date, urgency=urgency_for_days(days), days_until_due=days)
