# Overview: Pytest coverage for arrivage and lot management.

from decimal import Decimal

import pytest

from stockroom.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from stockroom.models import Arrivage, ShipmentItem, StockMovement
from stockroom.services.sale_allocation import SaleAllocator
from stockroom.services.shipment_service import ArrivageService


class TestArrivages:
    def test_create_arrivage(self, db_session, admin_a):
        arrivage = ArrivageService(db_session).create_arrivage(
            admin_a,
            {"reference": "ARR-2026-01", "exchange_rate": "10.85", "shipping_cost_eur": 20, "status": "IN_TRANSIT"},
        )

        assert arrivage.org_id == admin_a.org_id
        assert arrivage.total_cost_eur == Decimal("0.00")
        assert arrivage.total_cost_dh == Decimal("0.00")
        assert arrivage.fixed_costs_eur == Decimal("20.00")

    def test_duplicate_reference_conflicts(self, db_session, admin_a):
        service = ArrivageService(db_session)
        service.create_arrivage(admin_a, {"reference": "ARR-1", "exchange_rate": 10})

        with pytest.raises(ConflictError):
            service.create_arrivage(admin_a, {"reference": "ARR-1", "exchange_rate": 10})

    def test_same_reference_in_other_org_is_fine(self, db_session, admin_a, admin_b):
        service = ArrivageService(db_session)
        service.create_arrivage(admin_a, {"reference": "ARR-1", "exchange_rate": 10})
        other = service.create_arrivage(admin_b, {"reference": "ARR-1", "exchange_rate": 10})
        assert other.org_id == admin_b.org_id

    @pytest.mark.parametrize(
        "payload",
        [
            {"reference": "ARR-1", "exchange_rate": 0},
            {"reference": "ARR-1"},
            {"reference": "ARR-1", "exchange_rate": 10, "status": "LOST"},
            {"reference": "ARR-1", "exchange_rate": 10, "total_cost_eur": 5},
        ],
    )
    def test_invalid_payloads(self, db_session, admin_a, payload):
        with pytest.raises(ValidationError):
            ArrivageService(db_session).create_arrivage(admin_a, payload)

    def test_staff_cannot_create(self, db_session, staff_a):
        with pytest.raises(PermissionDeniedError):
            ArrivageService(db_session).create_arrivage(staff_a, {"reference": "ARR-1", "exchange_rate": 10})

    def test_rate_change_recalculates(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=5)

        ArrivageService(db_session).update_arrivage(admin_a, arrivage.id, {"exchange_rate": 11})

        assert arrivage.total_cost_eur == Decimal("20.00")
        assert arrivage.total_cost_dh == Decimal("220.00")

    def test_delete_arrivage_with_items_conflicts(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=5)

        with pytest.raises(ConflictError):
            ArrivageService(db_session).delete_arrivage(admin_a, arrivage.id)

    def test_delete_empty_arrivage_detaches_products(self, db_session, org_a, admin_a, make_arrivage, make_product):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1", arrivage_id=arrivage.id)
        arrivage_id = arrivage.id

        ArrivageService(db_session).delete_arrivage(admin_a, arrivage_id)

        assert db_session.get(Arrivage, arrivage_id) is None
        assert product.arrivage_id is None

    def test_other_org_arrivage_is_not_found(self, db_session, org_b, admin_a, make_arrivage):
        foreign = make_arrivage(org_b, "ARR-B")
        with pytest.raises(NotFoundError):
            ArrivageService(db_session).arrivage_detail(admin_a.org_id, foreign.id)


class TestLots:
    def test_add_item_receives_units(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1")

        lot = receive_lot(admin_a, arrivage, product, 12, cost_eur=3)

        assert (lot.quantity, lot.quantity_sold, lot.quantity_remaining) == (12, 0, 12)
        assert product.quantity_received == 12
        assert product.arrivage_id == arrivage.id
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).one()
        assert movement.type == "ARRIVAGE"
        assert (movement.previous_qty, movement.quantity, movement.new_qty) == (0, 12, 12)
        assert movement.reference == "Arrivage ARR-1"
        assert arrivage.total_cost_eur == Decimal("36.00")

    def test_quantity_edit_moves_received(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1")
        lot = receive_lot(admin_a, arrivage, product, 10, cost_eur=2)

        ArrivageService(db_session).update_item(admin_a, arrivage.id, lot.id, {"quantity": 6})

        assert (lot.quantity, lot.quantity_remaining) == (6, 6)
        assert product.quantity_received == 6
        assert arrivage.total_cost_eur == Decimal("12.00")

    def test_quantity_cannot_drop_below_sold(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1")
        lot = receive_lot(admin_a, arrivage, product, 10, cost_eur=2)
        SaleAllocator(db_session).create_sale(admin_a, product_id=product.id, quantity=7, price_per_unit=100)

        with pytest.raises(ValidationError):
            ArrivageService(db_session).update_item(admin_a, arrivage.id, lot.id, {"quantity": 5})

        db_session.expire_all()
        assert lot.quantity == 10

    def test_lot_with_sales_cannot_be_deleted(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1")
        lot = receive_lot(admin_a, arrivage, product, 10, cost_eur=2)
        SaleAllocator(db_session).create_sale(admin_a, product_id=product.id, quantity=1, price_per_unit=100)

        with pytest.raises(ConflictError):
            ArrivageService(db_session).delete_item(admin_a, arrivage.id, lot.id)

    def test_delete_item_returns_units(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(org_a, "SKU-1")
        lot = receive_lot(admin_a, arrivage, product, 10, cost_eur=2)
        lot_id = lot.id

        ArrivageService(db_session).delete_item(admin_a, arrivage.id, lot_id)

        assert db_session.get(ShipmentItem, lot_id) is None
        assert product.quantity_received == 0
        assert arrivage.total_cost_eur == Decimal("0.00")
        assert arrivage.total_units == 0

    def test_moving_a_lot_recalculates_both_arrivages(
        self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot
    ):
        source = make_arrivage(org_a, "ARR-A")
        target = make_arrivage(org_a, "ARR-B", exchange_rate="11")
        # No catalog price, so the product's link to ARR-A adds nothing once the lot leaves
        product = make_product(org_a, "SKU-1", purchase_price_mad=None)
        lot = receive_lot(admin_a, source, product, 5, cost_eur=4)
        assert source.total_cost_eur == Decimal("20.00")

        ArrivageService(db_session).update_item(admin_a, source.id, lot.id, {"arrivage_id": target.id})

        assert lot.arrivage_id == target.id
        assert source.total_cost_eur == Decimal("0.00")
        assert target.total_cost_eur == Decimal("20.00")
        assert target.total_cost_dh == Decimal("220.00")


class TestLotPricing:
    def test_eur_lot_carries_dh_at_arrivage_rate(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")

        lot = receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=2)

        assert lot.cost_per_unit_dh == Decimal("20.00")

    def test_rate_change_reprices_eur_lots_only(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        eur_lot = receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=2)
        dh_lot = receive_lot(admin_a, arrivage, make_product(org_a, "SKU-2"), 4, cost_dh="15.50")

        ArrivageService(db_session).update_arrivage(admin_a, arrivage.id, {"exchange_rate": 11})

        assert eur_lot.cost_per_unit_dh == Decimal("22.00")
        assert dh_lot.cost_per_unit_dh == Decimal("15.50")
        assert dh_lot.cost_per_unit_eur is None

    def test_moved_lot_takes_target_rate(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        source = make_arrivage(org_a, "ARR-A")
        target = make_arrivage(org_a, "ARR-B", exchange_rate="11")
        lot = receive_lot(admin_a, source, make_product(org_a, "SKU-1", purchase_price_mad=None), 5, cost_eur=4)
        assert lot.cost_per_unit_dh == Decimal("40.00")

        ArrivageService(db_session).update_item(admin_a, source.id, lot.id, {"arrivage_id": target.id})

        assert lot.cost_per_unit_dh == Decimal("44.00")

    def test_eur_edit_rederives_dh(self, db_session, org_a, admin_a, make_arrivage, make_product, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        lot = receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=2)

        ArrivageService(db_session).update_item(admin_a, arrivage.id, lot.id, {"cost_per_unit_eur": "2.50"})

        assert lot.cost_per_unit_dh == Decimal("25.00")
        assert arrivage.total_cost_eur == Decimal("10.00")
