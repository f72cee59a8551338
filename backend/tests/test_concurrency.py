# Overview: Pytest coverage for two sales racing for the same last units.

"""
Each worker gets its own Session on a file-backed SQLite database, so the
two transactions really interleave; the in-memory database used elsewhere
shares one connection and cannot show this.
"""

import threading
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from stockroom.errors import InsufficientStockError
from stockroom.extensions import db
from stockroom.models import Arrivage, Organization, Product, Sale, ShipmentItem, StockMovement, User
from stockroom.permissions import Role
from stockroom.services.sale_allocation import SaleAllocator
from stockroom.services.shipment_service import ArrivageService


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stockroom.sqlite3'}",
        connect_args={"timeout": 15, "check_same_thread": False},
    )
    db.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def stocked(engine):
    """One product with a single lot of 5 units; returns (actor, product_id, lot_id)."""
    with Session(engine) as session:
        org = Organization(name="Atlas Parfums", code="ATLAS", is_active=True)
        session.add(org)
        session.flush()
        user = User(org_id=org.id, email="admin@atlas.ma", role=Role.ADMIN, is_active=True)
        product = Product(
            org_id=org.id, sku="LAST-5", name="Last five", selling_price_dh=Decimal("100.00"),
            purchase_price_mad=Decimal("60.00"), quantity_received=0, quantity_sold=0, reorder_level=5,
        )
        arrivage = Arrivage(org_id=org.id, reference="ARR-1", exchange_rate=Decimal("10"))
        session.add_all([user, product, arrivage])
        session.commit()

        actor = SimpleNamespace(id=user.id, org_id=org.id, role=Role.ADMIN)
        lot = ArrivageService(session).add_item(actor, arrivage.id, {"product_id": product.id, "quantity": 5})
        return actor, product.id, lot.id


def test_two_sales_for_the_last_units(engine, stocked):
    actor, product_id, lot_id = stocked
    barrier = threading.Barrier(2)
    outcomes = []
    unexpected = []

    def sell():
        with Session(engine) as session:
            barrier.wait()
            try:
                SaleAllocator(session).create_sale(actor, product_id=product_id, quantity=3, price_per_unit=100)
                outcomes.append("sold")
            except InsufficientStockError as exc:
                outcomes.append(("short", exc.available))
            except Exception as exc:  # noqa: BLE001
                unexpected.append(exc)

    workers = [threading.Thread(target=sell) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=60)

    assert unexpected == []
    assert sorted(outcomes, key=str) == sorted(["sold", ("short", 2)], key=str)

    with Session(engine) as session:
        lot = session.get(ShipmentItem, lot_id)
        product = session.get(Product, product_id)
        assert (lot.quantity_sold, lot.quantity_remaining) == (3, 2)
        assert (product.quantity_received, product.quantity_sold) == (5, 3)
        assert session.query(Sale).count() == 1
        assert session.query(StockMovement).filter_by(product_id=product_id, type="SALE").count() == 1
