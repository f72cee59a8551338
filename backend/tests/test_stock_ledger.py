# Overview: Pytest coverage for stock adjustments, resets and the movement log.

import pytest

from stockroom.errors import NotFoundError, PermissionDeniedError, ValidationError
from stockroom.models import StockMovement
from stockroom.services.stock_ledger import StockLedger


def _movements(db_session, product):
    return (
        db_session.query(StockMovement)
        .filter_by(product_id=product.id)
        .order_by(StockMovement.id)
        .all()
    )


class TestAdjust:
    def test_increase_moves_received_and_logs_one_movement(self, db_session, org_a, staff_a, make_product):
        product = make_product(org_a, "SKU-1")
        ledger = StockLedger(db_session)

        result = ledger.adjust(product.id, 5, "Found in back room", None, staff_a)

        assert result == {"product_id": product.id, "previous_stock": 0, "new_stock": 5}
        assert product.quantity_received == 5
        assert product.quantity_sold == 0
        movements = _movements(db_session, product)
        assert len(movements) == 1
        movement = movements[0]
        assert movement.type == "ADJUSTMENT"
        assert (movement.previous_qty, movement.quantity, movement.new_qty) == (0, 5, 5)
        assert movement.reference == "Stock Adjustment (increase)"
        assert movement.notes == "Found in back room"
        assert movement.user_id == staff_a.id

    def test_decrease_uses_notes_over_reason(self, db_session, org_a, staff_a, make_product):
        product = make_product(org_a, "SKU-1")
        ledger = StockLedger(db_session)
        ledger.adjust(product.id, 5, "Count", None, staff_a)

        result = ledger.adjust(product.id, -2, "Damaged", "Two bottles broken", staff_a)

        assert result["new_stock"] == 3
        assert product.quantity_received == 3
        last = _movements(db_session, product)[-1]
        assert last.reference == "Stock Adjustment (decrease)"
        assert last.notes == "Two bottles broken"
        assert last.new_qty == last.previous_qty + last.quantity

    def test_below_zero_is_rejected_without_writes(self, db_session, org_a, staff_a, make_product):
        product = make_product(org_a, "SKU-1")
        ledger = StockLedger(db_session)
        ledger.adjust(product.id, 5, "Count", None, staff_a)

        with pytest.raises(ValidationError) as exc_info:
            ledger.adjust(product.id, -1000, "Oops", None, staff_a)

        assert "below zero" in exc_info.value.message
        db_session.expire_all()
        assert product.quantity_received == 5
        assert len(_movements(db_session, product)) == 1

    @pytest.mark.parametrize("delta", [0, 1.5, "3", True])
    def test_delta_must_be_non_zero_integer(self, db_session, org_a, staff_a, make_product, delta):
        product = make_product(org_a, "SKU-1")
        with pytest.raises(ValidationError):
            StockLedger(db_session).adjust(product.id, delta, "Count", None, staff_a)
        assert _movements(db_session, product) == []

    def test_reason_is_required(self, db_session, org_a, staff_a, make_product):
        product = make_product(org_a, "SKU-1")
        with pytest.raises(ValidationError):
            StockLedger(db_session).adjust(product.id, 1, "   ", None, staff_a)

    def test_other_org_product_is_not_found(self, db_session, org_a, org_b, staff_a, make_product):
        foreign = make_product(org_b, "SKU-B")
        with pytest.raises(NotFoundError):
            StockLedger(db_session).adjust(foreign.id, 1, "Count", None, staff_a)
        assert foreign.quantity_received == 0


class TestReset:
    def test_requires_super_admin(self, db_session, org_a, admin_a, make_product):
        product = make_product(org_a, "SKU-1")
        with pytest.raises(PermissionDeniedError):
            StockLedger(db_session).reset(product.id, 3, "Inventory", None, admin_a)

    def test_reset_zeroes_sold_by_default(self, db_session, org_a, super_a, make_arrivage, make_product, receive_lot):
        from stockroom.services.sale_allocation import SaleAllocator

        product = make_product(org_a, "SKU-1")
        arrivage = make_arrivage(org_a, "ARR-1")
        receive_lot(super_a, arrivage, product, 10, cost_eur=2)
        SaleAllocator(db_session).create_sale(super_a, product_id=product.id, quantity=4, price_per_unit=100)

        result = StockLedger(db_session).reset(product.id, 7, "Yearly count", None, super_a)

        assert result == {"product_id": product.id, "new_stock": 7, "quantity_received": 7, "quantity_sold": 0}
        last = _movements(db_session, product)[-1]
        assert last.reference == "Stock Reset"
        assert (last.previous_qty, last.quantity, last.new_qty) == (6, 1, 7)

    def test_reset_can_keep_sold(self, db_session, org_a, super_a, make_product):
        product = make_product(org_a, "SKU-1")
        product.quantity_received = 10
        product.quantity_sold = 4
        db_session.commit()

        result = StockLedger(db_session).reset(product.id, 2, "Count", None, super_a, reset_sold=False)

        assert result["quantity_received"] == 6
        assert result["quantity_sold"] == 4
        assert product.current_stock == 2

    def test_negative_target_is_rejected(self, db_session, org_a, super_a, make_product):
        product = make_product(org_a, "SKU-1")
        with pytest.raises(ValidationError):
            StockLedger(db_session).reset(product.id, -1, "Count", None, super_a)
        assert _movements(db_session, product) == []


def test_movements_are_newest_first(db_session, org_a, staff_a, make_product):
    product = make_product(org_a, "SKU-1")
    ledger = StockLedger(db_session)
    ledger.adjust(product.id, 5, "first", None, staff_a)
    ledger.adjust(product.id, -1, "second", None, staff_a)

    rows = ledger.movements(org_a.id, product.id)

    assert [m.notes for m in rows] == ["second", "first"]
    assert all(m.new_qty == m.previous_qty + m.quantity for m in rows)
