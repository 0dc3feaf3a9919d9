from datetime import date, datetime, timezone

import pytest

from app.db.models.mrp import Urgency
from services.mrp.scheduling import classify, days_until, suggested_order_date, urgency_for_days

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("days,expected", [
    (-3, Urgency.CRITICAL),
    (0, Urgency.CRITICAL),
    (1, Urgency.HIGH),
    (7, Urgency.HIGH),
    (8, Urgency.MEDIUM),
    (14, Urgency.MEDIUM),
    (15, Urgency.LOW),
    (None, Urgency.LOW),
])
def test_urgency_boundaries(days, expected):
    assert urgency_for_days(days) is expected


def test_days_until_floors_partial_days():
    assert days_until(date(2026, 1, 1), NOW) == 0
    assert days_until(date(2026, 1, 1), NOW.replace(hour=12)) == -1
    assert days_until(date(2026, 1, 9), NOW.replace(hour=12)) == 7
    assert days_until(date(2026, 1, 9), datetime(2026, 1, 1)) == 8


def test_order_date_backs_off_lead_time():
    assert suggested_order_date(date(2026, 3, 10), 7) == date(2026, 3, 3)
    assert suggested_order_date(date(2026, 3, 10), 0) == date(2026, 3, 10)


def test_classify_with_shortage():
    schedule = classify(date(2026, 1, 10), 7, suggested_qty=5, now=NOW)
    assert schedule.suggested_order_date == date(2026, 1, 3)
    assert schedule.days_until_due == 9
    assert schedule.urgency is Urgency.MEDIUM


def test_classify_without_shortage_has_no_order_date():
    schedule = classify(date(2026, 1, 2), 7, suggested_qty=0, now=NOW)
    assert schedule.suggested_order_date is None
    assert schedule.urgency is Urgency.HIGH


def test_classify_undated():
    schedule = classify(None, 7, suggested_qty=10, now=NOW)
    assert schedule.suggested_order_date is None
    assert schedule.urgency is Urgency.LOW
    assert schedule.days_until_due is None
