# Overview: Pytest coverage for arrivage cost recalculation.

from decimal import Decimal

from stockroom.models import ShipmentItem
from stockroom.services.cost_aggregator import ArrivageCostAggregator, unit_cost_eur


class TestUnitCost:
    def test_fallback_chain(self, db_session, org_a, make_product):
        product = make_product(org_a, "SKU-1", purchase_price_eur=Decimal("4.00"), purchase_price_mad=Decimal("50.00"))
        rate = Decimal("10")

        assert unit_cost_eur(ShipmentItem(cost_per_unit_eur=Decimal("2.50")), product, rate) == Decimal("2.50")
        assert unit_cost_eur(ShipmentItem(cost_per_unit_dh=Decimal("30")), product, rate) == Decimal("3")
        assert unit_cost_eur(ShipmentItem(), product, rate) == Decimal("4.00")

        product.purchase_price_eur = None
        assert unit_cost_eur(None, product, rate) == Decimal("5")

        product.purchase_price_mad = None
        assert unit_cost_eur(None, product, rate) == Decimal("0")


class TestRecalculate:
    def test_totals_are_items_plus_expenses(
        self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot
    ):
        from stockroom.services.expense_service import ExpenseService

        arrivage = make_arrivage(
            org_a, "ARR-1", exchange_rate="10.85",
            shipping_cost_eur=Decimal("12.00"), customs_cost_eur=Decimal("8.00"), packaging_cost_eur=Decimal("5.00"),
        )
        product = make_product(org_a, "SKU-1")
        receive_lot(admin_a, arrivage, product, 10, cost_eur="2.50")
        ExpenseService(db_session).create_expense(
            admin_a, {"arrivage_id": arrivage.id, "amount_eur": 15, "description": "Courier"},
        )

        # 25 items + 15 expense; the 25 of fixed charges are reported apart
        assert arrivage.total_cost_eur == Decimal("40.00")
        assert arrivage.total_cost_dh == Decimal("434.00")
        assert arrivage.fixed_costs_eur == Decimal("25.00")
        assert arrivage.to_dict()["fixed_costs_eur"] == 25.0
        assert arrivage.product_count == 1
        assert arrivage.total_units == 10

    def test_fixed_charges_stay_out_of_the_total(
        self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot
    ):
        arrivage = make_arrivage(org_a, "ARR-1", shipping_cost_eur=Decimal("100.00"))
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 10, cost_eur=2)

        assert arrivage.total_cost_eur == Decimal("20.00")
        assert arrivage.total_cost_dh == Decimal("200.00")

    def test_recalculate_is_idempotent(self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1", exchange_rate="10.85")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 7, cost_eur="1.33")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-2"), 3, cost_dh="19.99")
        aggregator = ArrivageCostAggregator(db_session)

        first = aggregator.recalculate(arrivage.id)
        snapshot = (first.total_cost_eur, first.total_cost_dh, first.product_count, first.total_units)
        second = aggregator.recalculate(arrivage.id)

        assert (second.total_cost_eur, second.total_cost_dh, second.product_count, second.total_units) == snapshot

    def test_inactive_products_are_left_out(self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        keep = make_product(org_a, "KEEP")
        drop = make_product(org_a, "DROP")
        receive_lot(admin_a, arrivage, keep, 2, cost_eur=5)
        receive_lot(admin_a, arrivage, drop, 4, cost_eur=5)
        drop.is_active = False
        db_session.flush()

        result = ArrivageCostAggregator(db_session).recalculate(arrivage.id)

        assert result.total_cost_eur == Decimal("10.00")
        assert result.product_count == 1

    def test_linked_product_without_lot_counts_received_units(self, db_session, org_a, make_product, make_arrivage):
        arrivage = make_arrivage(org_a, "ARR-1")
        product = make_product(
            org_a, "LINKED",
            arrivage_id=arrivage.id,
            purchase_price_eur=None,
            purchase_price_mad=Decimal("40.00"),
        )
        product.quantity_received = 6
        db_session.commit()

        result = ArrivageCostAggregator(db_session).recalculate(arrivage.id)

        # 6 units at 40 MAD / 10
        assert result.total_cost_eur == Decimal("24.00")
        assert result.total_cost_dh == Decimal("240.00")
        assert result.product_count == 1
        assert result.total_units == 6

    def test_recalculate_many_skips_none_and_duplicates(self, db_session, org_a, make_arrivage):
        a = make_arrivage(org_a, "ARR-A")
        b = make_arrivage(org_a, "ARR-B")

        result = ArrivageCostAggregator(db_session).recalculate_many([b.id, None, a.id, b.id])

        assert [arrivage.id for arrivage in result] == [b.id, a.id]


class TestDrift:
    def test_compute_does_not_write(self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=5)
        arrivage.total_cost_eur = Decimal("1.00")

        fresh = ArrivageCostAggregator(db_session).compute(arrivage)

        assert fresh["total_cost_eur"] == Decimal("20.00")
        assert fresh["total_units"] == 4
        assert arrivage.total_cost_eur == Decimal("1.00")

    def test_drift_lists_stale_fields_only(self, db_session, org_a, admin_a, make_product, make_arrivage, receive_lot):
        arrivage = make_arrivage(org_a, "ARR-1")
        receive_lot(admin_a, arrivage, make_product(org_a, "SKU-1"), 4, cost_eur=5)
        aggregator = ArrivageCostAggregator(db_session)
        assert aggregator.drift(arrivage) == {}

        arrivage.total_units = 9

        assert aggregator.drift(arrivage) == {"total_units": (9, 4)}
