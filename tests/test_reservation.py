import pytest

from app.db.models.inventory import InventoryRecord, StockTransaction
from app.events.outbox import OutboxEvent
from services.inventory.errors import InsufficientAvailableStock, InvalidQuantity
from services.inventory.ledger import available_qty
from services.inventory.reservation import release_reservation, reserve_inventory


def test_reserve_moves_only_reserved_qty(db, factory):
    part = factory.part()
    factory.stock(part, 100)

    result = reserve_inventory(db, part_id=part.id, quantity=30, reference_type="SALES_ORDER", reference_id="SO-1")

    assert (result.current_qty, result.reserved_qty, result.available_qty) == (100, 30, 70)
    assert db.query(StockTransaction).count() == 1
    assert db.query(OutboxEvent).filter(OutboxEvent.topic == "inventory.reserved").count() == 1


def test_reserve_beyond_available_is_refused(db, factory):
    part = factory.part()
    factory.stock(part, 100)
    reserve_inventory(db, part_id=part.id, quantity=30, reference_type="SALES_ORDER", reference_id="SO-1")

    with pytest.raises(InsufficientAvailableStock) as exc:
        reserve_inventory(db, part_id=part.id, quantity=71, reference_type="SALES_ORDER", reference_id="SO-2")

    assert exc.value.available_qty == 70
    db.expire_all()
    assert db.query(InventoryRecord).one().reserved_qty == 30


def test_reserve_without_stock(db, factory):
    part = factory.part()
    with pytest.raises(InsufficientAvailableStock):
        reserve_inventory(db, part_id=part.id, quantity=1, reference_type="SALES_ORDER", reference_id="SO-1")


def test_release_floors_at_zero(db, factory):
    part = factory.part()
    factory.stock(part, 10)
    reserve_inventory(db, part_id=part.id, quantity=4, reference_type="SALES_ORDER", reference_id="SO-1")

    result = release_reservation(db, part_id=part.id, quantity=50)

    assert result.reserved_qty == 0
    assert result.available_qty == 10


@pytest.mark.parametrize("quantity", [0, -3])
def test_quantities_must_be_positive(db, factory, quantity):
    part = factory.part()
    with pytest.raises(InvalidQuantity):
        reserve_inventory(db, part_id=part.id, quantity=quantity, reference_type="X", reference_id="1")
    with pytest.raises(InvalidQuantity):
        release_reservation(db, part_id=part.id, quantity=quantity)


def test_available_never_negative():
    assert available_qty(10, 4) == 6
    assert available_qty(10, 20) == 0
