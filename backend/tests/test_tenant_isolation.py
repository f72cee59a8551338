# Overview: Pytest coverage proving one organization never sees another's rows.

from decimal import Decimal

from stockroom.models import Product
from stockroom.services.sale_allocation import SaleAllocator


def _seed_org_b(admin_b, org_b, make_arrivage, make_product, receive_lot):
    arrivage = make_arrivage(org_b, "ARR-B")
    product = make_product(org_b, "SKU-B")
    receive_lot(admin_b, arrivage, product, 5, cost_eur=2)
    return arrivage, product


def test_lists_only_show_own_rows(client, db_session, admin_a, admin_b, org_a, org_b, headers_for,
                                  make_arrivage, make_product, receive_lot):
    _, foreign_product = _seed_org_b(admin_b, org_b, make_arrivage, make_product, receive_lot)
    SaleAllocator(db_session).create_sale(admin_b, product_id=foreign_product.id, quantity=1, price_per_unit=100)
    own = make_product(org_a, "SKU-A")
    headers = headers_for(admin_a)

    products = client.get("/api/products", headers=headers).get_json()
    assert [p["sku"] for p in products["items"]] == [own.sku]

    assert client.get("/api/sales", headers=headers).get_json()["count"] == 0
    assert client.get("/api/arrivages", headers=headers).get_json()["count"] == 0
    assert client.get("/api/expenses", headers=headers).get_json()["count"] == 0


def test_cross_org_reads_are_404(client, db_session, admin_a, admin_b, org_b, headers_for,
                                 make_arrivage, make_product, receive_lot):
    arrivage, product = _seed_org_b(admin_b, org_b, make_arrivage, make_product, receive_lot)
    sale = SaleAllocator(db_session).create_sale(admin_b, product_id=product.id, quantity=1, price_per_unit=100)
    headers = headers_for(admin_a)

    assert client.get(f"/api/products/{product.id}", headers=headers).status_code == 404
    assert client.get(f"/api/arrivages/{arrivage.id}", headers=headers).status_code == 404
    assert client.get(f"/api/sales/{sale.id}", headers=headers).status_code == 404
    assert client.get(f"/api/products/{product.id}/stock-movements", headers=headers).status_code == 404


def test_cross_org_writes_are_404_and_change_nothing(client, db_session, admin_a, admin_b, org_b, headers_for,
                                                     make_arrivage, make_product, receive_lot):
    arrivage, product = _seed_org_b(admin_b, org_b, make_arrivage, make_product, receive_lot)
    sale = SaleAllocator(db_session).create_sale(admin_b, product_id=product.id, quantity=1, price_per_unit=100)
    sale_id, product_id = sale.id, product.id
    headers = headers_for(admin_a)

    assert client.post(
        "/api/sales", headers=headers,
        json={"product_id": product_id, "quantity": 1, "price_per_unit": 100},
    ).status_code == 404
    assert client.delete(f"/api/sales/{sale_id}", headers=headers).status_code == 404
    assert client.post(
        f"/api/products/{product_id}/adjust-stock", headers=headers,
        json={"delta": 3, "reason": "Count"},
    ).status_code == 404
    assert client.post(
        f"/api/arrivages/{arrivage.id}/items", headers=headers,
        json={"product_id": product_id, "quantity": 3},
    ).status_code == 404

    db_session.expire_all()
    untouched = db_session.get(Product, product_id)
    assert (untouched.quantity_received, untouched.quantity_sold) == (5, 1)


def test_settings_are_per_organization(client, db_session, admin_a, admin_b, headers_for):
    response = client.put(
        "/api/settings/packagingCostTotal", headers=headers_for(admin_a), json={"value": "9.50"},
    )
    assert response.status_code == 200

    mine = client.get("/api/settings/packagingCostTotal", headers=headers_for(admin_a)).get_json()
    theirs = client.get("/api/settings/packagingCostTotal", headers=headers_for(admin_b)).get_json()

    assert Decimal(str(mine["value"])) == Decimal("9.50")
    assert Decimal(str(theirs["value"])) == Decimal("8.00")
