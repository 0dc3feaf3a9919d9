"""
Shared fixtures: a fresh in-memory SQLite database per test, a small
factory for master data and documents, and a TestClient wired to it.
"""
import os
from datetime import date
from decimal import Decimal

# Must be set before app.db.session is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVENTS_DISPATCHER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db import models  # noqa: F401
from app.db.models.catalog import BomItem, Part, Product, Supplier
from app.db.models.inventory import TransactionType
from app.db.models.purchasing import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderLineStatus,
    PurchaseOrderStatus,
)
from app.db.models.sales import SalesOrder, SalesOrderLine, SalesOrderStatus
from app.db.session import get_db
from services.inventory.ledger import apply_transaction


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    from main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, db):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def supplier(self, code="SUP-1", lead_time_days=5):
        return self._save(Supplier(supplier_code=code, name=f"Supplier {code}", lead_time_days=lead_time_days, meta={}))

    def part(self, code="P-1", *, safety_stock=0, min_order_qty=1, lead_time_days=7,
             supplier=None, unit_price="10", is_active=True):
        return self._save(Part(
            part_code=code,
            part_name=f"Part {code}",
            unit_price=Decimal(unit_price),
            safety_stock=safety_stock,
            min_order_qty=min_order_qty,
            lead_time_days=lead_time_days,
            supplier_id=supplier.id if supplier else None,
            is_active=is_active,
        ))

    def product(self, code="PRD-1"):
        return self._save(Product(product_code=code, product_name=f"Product {code}"))

    def bom(self, product, part, quantity_per_unit="1", loss_rate="0", is_active=True):
        return self._save(BomItem(
            product_id=product.id,
            part_id=part.id,
            quantity_per_unit=Decimal(quantity_per_unit),
            loss_rate=Decimal(loss_rate),
            is_active=is_active,
        ))

    def sales_order(self, code="SO-1", lines=(), *, due_date: date | None = None,
                    status=SalesOrderStatus.RECEIVED, project=None):
        so = SalesOrder(order_code=code, due_date=due_date, status=status, project=project)
        for product, qty in lines:
            so.lines.append(SalesOrderLine(product_id=product.id, order_qty=qty))
        return self._save(so)

    def purchase_order(self, supplier, lines=(), *, code="PO-T-0001", status=PurchaseOrderStatus.ORDERED):
        po = PurchaseOrder(order_code=code, supplier_id=supplier.id, order_date=date.today(), status=status)
        for part, ordered, received, *rest in lines:
            line_status = rest[0] if rest else PurchaseOrderLineStatus.ORDERED
            po.lines.append(PurchaseOrderLine(
                part_id=part.id,
                order_qty=ordered,
                received_qty=received,
                unit_price=part.unit_price,
                total_price=part.unit_price * ordered,
                status=line_status,
            ))
        return self._save(po)

    def stock(self, part, qty):
        return apply_transaction(self.db, part_id=part.id, transaction_type=TransactionType.INBOUND, quantity=qty)


@pytest.fixture()
def factory(db):
    return Factory(db)
