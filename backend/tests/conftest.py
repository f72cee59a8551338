"""
Pytest fixtures for Stockroom backend tests.

Provides test database setup, tenant fixtures (two organizations with users
of every role), product/arrivage/lot factories and bearer-token headers.
"""

from decimal import Decimal

import pytest

from stockroom import create_app
from stockroom.config import TestConfig
from stockroom.extensions import db
from stockroom.models import Organization, User, Product, Arrivage
from stockroom.permissions import Role
from stockroom.services.session_service import create_session
from stockroom.services.shipment_service import ArrivageService


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Atlas Parfums", code="ATLAS", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Beauty", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


def make_user(db_session, org, role, email):
    user = User(org_id=org.id, email=email, full_name=email.split("@")[0], role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff_a(db_session, org_a):
    return make_user(db_session, org_a, Role.STAFF, "staff@atlas.ma")


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    return make_user(db_session, org_a, Role.ADMIN, "admin@atlas.ma")


@pytest.fixture(scope='function')
def super_a(db_session, org_a):
    return make_user(db_session, org_a, Role.SUPER_ADMIN, "owner@atlas.ma")


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    return make_user(db_session, org_b, Role.ADMIN, "admin@beta.ma")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(org, sku, **fields) -> Product with zero stock."""
    def _make(org, sku, **fields):
        values = {
            "name": f"Product {sku}",
            "selling_price_dh": Decimal("100.00"),
            "purchase_price_mad": Decimal("60.00"),
            "reorder_level": 5,
        }
        values.update(fields)
        product = Product(org_id=org.id, sku=sku, quantity_received=0, quantity_sold=0, **values)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_arrivage(db_session):
    """Factory: make_arrivage(org, reference, exchange_rate=10, **fields) -> Arrivage."""
    def _make(org, reference, exchange_rate="10", **fields):
        arrivage = Arrivage(org_id=org.id, reference=reference, exchange_rate=Decimal(exchange_rate), **fields)
        db_session.add(arrivage)
        db_session.commit()
        return arrivage
    return _make


@pytest.fixture(scope='function')
def receive_lot(db_session):
    """Factory: receive_lot(actor, arrivage, product, quantity, cost_eur=None) -> ShipmentItem."""
    def _receive(actor, arrivage, product, quantity, cost_eur=None, cost_dh=None):
        payload = {"product_id": product.id, "quantity": quantity}
        if cost_eur is not None:
            payload["cost_per_unit_eur"] = cost_eur
        if cost_dh is not None:
            payload["cost_per_unit_dh"] = cost_dh
        return ArrivageService(db_session).add_item(actor, arrivage.id, payload)
    return _receive


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: headers_for(user) -> Authorization headers with a fresh token."""
    def _headers(user):
        _, token = create_session(user.id)
        return auth_headers(token)
    return _headers


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
