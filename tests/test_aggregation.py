from datetime import date
from decimal import Decimal

from app.db.models.sales import SalesOrderStatus
from services.mrp.aggregation import MrpScope, aggregate_requirements, bom_requirement


def test_bom_requirement_includes_loss():
    assert bom_requirement(10, Decimal("2"), Decimal("0.05")) == Decimal("21")
    assert bom_requirement(3, Decimal("0.5"), 0) == Decimal("1.5")


def test_requirement_per_part_and_order(db, factory):
    bolt = factory.part("BOLT")
    panel = factory.part("PANEL")
    cabinet = factory.product("CAB")
    rack = factory.product("RACK")
    factory.bom(cabinet, bolt, "2", "0.05")
    factory.bom(cabinet, panel, "4")
    factory.bom(rack, bolt, "8")

    so1 = factory.sales_order("SO-1", [(cabinet, 10), (rack, 1)], due_date=date(2026, 2, 1))
    so2 = factory.sales_order("SO-2", [(cabinet, 5)])

    demands = aggregate_requirements(db, MrpScope())

    assert set(demands) == {(bolt.id, so1.id), (panel.id, so1.id), (bolt.id, so2.id), (panel.id, so2.id)}
    assert demands[(bolt.id, so1.id)].requirement == Decimal("29")
    assert demands[(bolt.id, so1.id)].due_date == date(2026, 2, 1)
    assert demands[(bolt.id, so1.id)].sales_order_code == "SO-1"
    assert demands[(panel.id, so2.id)].requirement == Decimal("20")
    assert demands[(bolt.id, so2.id)].due_date is None


def test_inactive_rows_and_closed_orders_are_skipped(db, factory):
    live = factory.part("LIVE")
    retired = factory.part("RETIRED", is_active=False)
    dropped = factory.part("DROPPED")
    product = factory.product()
    factory.bom(product, live)
    factory.bom(product, retired)
    factory.bom(product, dropped, is_active=False)

    open_so = factory.sales_order("SO-OPEN", [(product, 3)], status=SalesOrderStatus.IN_PROGRESS)
    factory.sales_order("SO-DONE", [(product, 3)], status=SalesOrderStatus.COMPLETED)
    factory.sales_order("SO-CXL", [(product, 3)], status=SalesOrderStatus.CANCELLED)

    demands = aggregate_requirements(db, MrpScope())
    assert list(demands) == [(live.id, open_so.id)]


def test_scope_limits_parts_and_orders(db, factory):
    a = factory.part("A")
    b = factory.part("B")
    product = factory.product()
    factory.bom(product, a)
    factory.bom(product, b)
    so1 = factory.sales_order("SO-1", [(product, 1)])
    so2 = factory.sales_order("SO-2", [(product, 1)])

    by_order = aggregate_requirements(db, MrpScope.of(sales_order_ids=[so2.id]))
    assert set(by_order) == {(a.id, so2.id), (b.id, so2.id)}

    by_part = aggregate_requirements(db, MrpScope.of(part_ids=[a.id]))
    assert set(by_part) == {(a.id, so1.id), (a.id, so2.id)}

    assert aggregate_requirements(db, MrpScope.of(part_ids=[])) == {}
