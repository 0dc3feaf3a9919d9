from decimal import Decimal

import pytest

from services.mrp.netting import (
    StockPosition,
    available_stock,
    incoming_quantity,
    net_and_suggest,
    net_requirement,
    round_quantity,
    suggested_order_qty,
)


def test_worked_example():
    available = available_stock(current_stock=100, incoming_qty=0, reserved_qty=20, safety_stock=10)
    assert available == 70
    net = net_requirement(150, available)
    assert net == 80
    assert suggested_order_qty(net, 100) == 100
    assert suggested_order_qty(net, 50) == 80


def test_negative_availability_counts_as_zero():
    assert available_stock(5, 0, 0, 10) == -5
    assert net_requirement(10, -5) == 10


def test_no_shortage_no_suggestion():
    assert net_requirement(50, 70) == 0
    assert suggested_order_qty(0, 100) == 0


@pytest.mark.parametrize("net,moq,expected", [
    (Decimal("10.2"), 1, 11),
    (Decimal("10.0"), 0, 10),
    (Decimal("0.1"), 25, 25),
])
def test_suggestion_is_ceiling_with_moq_floor(net, moq, expected):
    assert suggested_order_qty(net, moq) == expected


def test_half_up_rounding():
    assert round_quantity(Decimal("2.5")) == 3
    assert round_quantity(Decimal("2.49")) == 2
    assert round_quantity(21) == 21


def test_later_demand_sees_what_earlier_demand_left():
    position = StockPosition(current_stock=100, min_order_qty=1)

    first = net_and_suggest(position, 60)
    assert first.net_requirement == 0
    assert first.consumed_stock == 60

    second = net_and_suggest(position, 60, allocated=first.consumed_stock)
    assert second.net_requirement == 20
    assert second.suggested_order_qty == 20
    assert second.consumed_stock == 40


def test_incoming_ignores_over_receipts():
    assert incoming_quantity([(100, 30), (50, 60)]) == 70
    assert incoming_quantity([]) == 0
