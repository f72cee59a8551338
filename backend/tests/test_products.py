# Overview: Pytest coverage for the product catalog service.

from decimal import Decimal

import pytest

from stockroom.errors import ConflictError, PermissionDeniedError, ValidationError
from stockroom.services.products_service import ProductService


def test_create_product_starts_with_zero_stock(db_session, admin_a):
    product = ProductService(db_session).create_product(
        admin_a, {"sku": "OUD-50", "name": "Oud 50ml", "selling_price_dh": 250, "purchase_price_mad": 120},
    )

    assert product.org_id == admin_a.org_id
    assert (product.quantity_received, product.quantity_sold) == (0, 0)
    assert product.reorder_level == 5


def test_stock_counters_are_not_writable(db_session, admin_a):
    with pytest.raises(ValidationError):
        ProductService(db_session).create_product(
            admin_a, {"sku": "X", "name": "X", "selling_price_dh": 10, "quantity_received": 100},
        )


def test_negative_price_is_rejected(db_session, admin_a):
    with pytest.raises(ValidationError):
        ProductService(db_session).create_product(
            admin_a, {"sku": "X", "name": "X", "selling_price_dh": -1},
        )


def test_duplicate_sku_conflicts_within_org_only(db_session, admin_a, admin_b):
    service = ProductService(db_session)
    payload = {"sku": "SKU-1", "name": "One", "selling_price_dh": 10}
    service.create_product(admin_a, payload)

    with pytest.raises(ConflictError):
        service.create_product(admin_a, payload)
    assert service.create_product(admin_b, payload).org_id == admin_b.org_id


def test_eur_price_derives_mad_from_arrivage_rate(db_session, org_a, admin_a, make_arrivage):
    arrivage = make_arrivage(org_a, "ARR-1", exchange_rate="11")

    product = ProductService(db_session).create_product(
        admin_a,
        {"sku": "SKU-1", "name": "One", "selling_price_dh": 100, "purchase_price_eur": 4, "arrivage_id": arrivage.id},
    )

    assert product.purchase_price_mad == Decimal("44.00")


def test_staff_cannot_create(db_session, staff_a):
    with pytest.raises(PermissionDeniedError):
        ProductService(db_session).create_product(staff_a, {"sku": "X", "name": "X", "selling_price_dh": 10})


def test_soft_delete_hides_from_listing(db_session, org_a, admin_a, make_product):
    keep = make_product(org_a, "KEEP")
    gone = make_product(org_a, "GONE")
    service = ProductService(db_session)

    service.delete_product(admin_a, gone.id)

    assert gone.is_active is False
    assert [p["sku"] for p in service.list_products(org_a.id)["items"]] == [keep.sku]
    assert service.list_products(org_a.id, include_inactive=True)["count"] == 2


def test_listing_stock_filter_and_margins(db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
    stocked = make_product(org_a, "STOCKED")
    make_product(org_a, "OUT")
    receive_lot(admin_a, make_arrivage(org_a, "ARR-1"), stocked, 20, cost_eur=5)
    service = ProductService(db_session)

    (row,) = service.list_products(org_a.id, stock="ok")["items"]
    assert row["sku"] == stocked.sku
    assert row["margin"] == 40.0
    assert row["net_margin"] == 32.0
    assert row["margin_color"] == "success"
    assert [p["sku"] for p in service.list_products(org_a.id, stock="out")["items"]] == ["OUT"]


def test_available_stock_counts_lots_only(db_session, org_a, admin_a, staff_a, make_arrivage, make_product, receive_lot):
    from stockroom.services.stock_ledger import StockLedger

    with_lot = make_product(org_a, "LOT")
    adjusted = make_product(org_a, "ADJ")
    receive_lot(admin_a, make_arrivage(org_a, "ARR-1"), with_lot, 3, cost_eur=5)
    StockLedger(db_session).adjust(adjusted.id, 4, "Found", None, staff_a)

    rows = ProductService(db_session).available_stock(org_a.id)

    assert [(r["sku"], r["available_stock"]) for r in rows] == [("LOT", 3)]


def test_available_stock_is_capped_by_adjustments(db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
    from stockroom.services.stock_ledger import StockLedger

    product = make_product(org_a, "LOT")
    receive_lot(admin_a, make_arrivage(org_a, "ARR-1"), product, 10, cost_eur=5)
    StockLedger(db_session).adjust(product.id, -8, "Stolen", None, admin_a)

    (row,) = ProductService(db_session).available_stock(org_a.id)

    assert row["available_stock"] == 2
