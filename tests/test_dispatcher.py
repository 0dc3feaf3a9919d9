import asyncio
import json

import httpx
import pytest

from app.events.bus import publish
from app.events.dispatcher import _pattern_matches, dispatch_batch
from app.events.outbox import OutboxEvent
from app.events.subscriptions import EventSubscription


@pytest.mark.parametrize("pattern,topic,expected", [
    ("inventory.changed", "inventory.changed", True),
    ("inventory.*", "inventory.reserved", True),
    ("inventory.", "inventory.released", True),
    ("inventory.*", "inventorying", False),
    ("mrp.run.completed", "mrp.run", False),
    ("", "mrp.run.completed", False),
])
def test_pattern_matches(pattern, topic, expected):
    assert _pattern_matches(pattern, topic) is expected


def _dispatch(session_factory, handler):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await dispatch_batch(client, session_factory=session_factory)
    return asyncio.run(run())


def test_delivers_to_matching_subscribers(db, session_factory):
    db.add(EventSubscription(name="erp", topic_pattern="inventory.*", target_url="http://hooks.test/erp", headers={"X-Key": "k"}))
    publish(db, "inventory.changed", {"part_code": "P-1"})
    publish(db, "mrp.run.completed", {"total_results": 0}, commit=True)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(204)

    assert _dispatch(session_factory, handler) == 2

    assert len(seen) == 1
    assert seen[0].headers["X-Key"] == "k"
    db.expire_all()
    assert all(e.delivered for e in db.query(OutboxEvent).all())


def test_failed_delivery_is_retried_later(db, session_factory):
    db.add(EventSubscription(name="erp", topic_pattern="mrp.*", target_url="http://hooks.test/erp"))
    publish(db, "mrp.run.completed", {"total_results": 1}, commit=True)

    assert _dispatch(session_factory, lambda request: httpx.Response(500, text="down")) == 0

    db.expire_all()
    evt = db.query(OutboxEvent).one()
    sub = db.query(EventSubscription).one()
    assert evt.delivered is False
    assert evt.attempt_count == 1
    assert "HTTP 500" in evt.last_error
    assert sub.failure_count == 1


def test_body_names_the_entity(db, session_factory):
    db.add(EventSubscription(name="erp", topic_pattern="inventory.changed", target_url="http://hooks.test/erp"))
    publish(db, "inventory.changed", {"after_qty": 3}, entity=("part", "p-1"), commit=True)
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.read()))
        return httpx.Response(200)

    _dispatch(session_factory, handler)

    assert (bodies[0]["entity_type"], bodies[0]["entity_id"]) == ("part", "p-1")
    assert bodies[0]["payload"] == {"after_qty": 3}


def test_subscription_switched_off_after_max_failures(db, session_factory):
    db.add(EventSubscription(name="flaky", topic_pattern="mrp.", target_url="http://hooks.test/x", max_failures=1))
    publish(db, "mrp.run.completed", {}, commit=True)

    _dispatch(session_factory, lambda request: httpx.Response(503))

    db.expire_all()
    sub = db.query(EventSubscription).one()
    assert sub.is_active is False
    assert sub.failure_count == 1
