# Overview: Pytest coverage for stock-changing routes driven through the request session.

"""
These go through Flask-SQLAlchemy's scoped db.session, the same path a real
client takes, so the write-lock and retry helpers run against it.
"""

from stockroom.extensions import db
from stockroom.models import Sale, StockMovement
from stockroom.services.concurrency import begin_write


def test_begin_write_accepts_the_scoped_session(db_session):
    begin_write(db.session)
    db.session.rollback()


def test_receive_lot_over_http(client, db_session, org_a, admin_a, headers_for, make_arrivage, make_product):
    arrivage = make_arrivage(org_a, "ARR-1")
    product = make_product(org_a, "SKU-1")

    response = client.post(
        f"/api/arrivages/{arrivage.id}/items",
        headers=headers_for(admin_a),
        json={"product_id": product.id, "quantity": 6, "cost_per_unit_eur": 2},
    )

    assert response.status_code == 201
    item = response.get_json()["item"]
    assert item["quantity_remaining"] == 6
    assert item["cost_per_unit_dh"] == 20.0
    db_session.expire_all()
    assert product.quantity_received == 6
    assert arrivage.total_cost_eur == 12


def test_edit_and_delete_lot_over_http(client, db_session, org_a, admin_a, headers_for, make_arrivage, make_product, receive_lot):
    arrivage = make_arrivage(org_a, "ARR-1")
    product = make_product(org_a, "SKU-1")
    lot = receive_lot(admin_a, arrivage, product, 6, cost_eur=2)
    headers = headers_for(admin_a)

    edited = client.patch(f"/api/arrivages/{arrivage.id}/items/{lot.id}", headers=headers, json={"quantity": 4})
    assert edited.status_code == 200
    assert edited.get_json()["item"]["quantity"] == 4

    deleted = client.delete(f"/api/arrivages/{arrivage.id}/items/{lot.id}", headers=headers)
    assert deleted.status_code == 200
    db_session.expire_all()
    assert product.quantity_received == 0


def test_sale_lifecycle_over_http(client, db_session, org_a, admin_a, headers_for, make_arrivage, make_product, receive_lot):
    product = make_product(org_a, "SKU-1")
    lot = receive_lot(admin_a, make_arrivage(org_a, "ARR-1"), product, 5, cost_eur=3)
    headers = headers_for(admin_a)

    created = client.post(
        "/api/sales", headers=headers, json={"product_id": product.id, "quantity": 2, "price_per_unit": 100},
    )
    assert created.status_code == 201
    sale_id = created.get_json()["sale"]["id"]

    edited = client.patch(f"/api/sales/{sale_id}", headers=headers, json={"quantity": 3})
    assert edited.status_code == 200
    assert edited.get_json()["sale"]["total_amount"] == 300.0
    db_session.expire_all()
    assert lot.quantity_remaining == 2

    deleted = client.delete(f"/api/sales/{sale_id}", headers=headers)
    assert deleted.status_code == 200
    db_session.expire_all()
    assert lot.quantity_remaining == 5
    assert product.quantity_sold == 0
    assert db_session.get(Sale, sale_id) is None
    types = [m.type for m in db_session.query(StockMovement).filter_by(product_id=product.id).order_by(StockMovement.id)]
    assert types == ["ARRIVAGE", "SALE", "RETURN", "SALE", "RETURN"]


def test_bundle_sale_over_http(client, db_session, org_a, admin_a, staff_a, headers_for, make_arrivage, make_product, receive_lot):
    arrivage = make_arrivage(org_a, "ARR-1")
    a = make_product(org_a, "P-1", purchase_price_mad=None)
    b = make_product(org_a, "P-2", purchase_price_mad=None)
    receive_lot(admin_a, arrivage, a, 3, cost_eur=1)
    receive_lot(admin_a, arrivage, b, 3, cost_eur=1)

    response = client.post(
        "/api/sales",
        headers=headers_for(staff_a),
        json={"items": [
            {"product_id": a.id, "quantity": 1, "price_per_unit": 10},
            {"product_id": b.id, "quantity": 2, "price_per_unit": 20},
        ]},
    )

    assert response.status_code == 201
    assert response.get_json()["sale"]["pricing_mode"] == "BUNDLE"
    db_session.expire_all()
    assert (a.quantity_sold, b.quantity_sold) == (1, 2)


def test_sale_after_downward_adjustment_is_409(client, db_session, org_a, admin_a, staff_a, headers_for,
                                               make_arrivage, make_product, receive_lot):
    product = make_product(org_a, "SKU-1")
    receive_lot(admin_a, make_arrivage(org_a, "ARR-1"), product, 10, cost_eur=3)
    headers = headers_for(staff_a)

    adjusted = client.post(
        f"/api/products/{product.id}/adjust-stock", headers=headers, json={"delta": -8, "reason": "Stolen"},
    )
    assert adjusted.status_code == 200

    response = client.post(
        "/api/sales", headers=headers, json={"product_id": product.id, "quantity": 5, "price_per_unit": 100},
    )

    assert response.status_code == 409
    assert (response.get_json()["available"], response.get_json()["requested"]) == (2, 5)
