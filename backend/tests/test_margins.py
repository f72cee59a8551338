# Overview: Pytest coverage for the margin calculator.

from decimal import Decimal
from types import SimpleNamespace

import pytest

from stockroom.services import margins


def _product(selling, purchase):
    return SimpleNamespace(selling_price_dh=selling, purchase_price_mad=purchase)


class TestMargin:
    def test_gross_margin(self):
        assert margins.margin(100, 60) == Decimal("40.00")

    def test_zero_selling_price_is_zero(self):
        assert margins.margin(0, 10) == Decimal("0.00")
        assert margins.net_margin(0, 10) == Decimal("0.00")

    def test_net_margin_uses_packaging_cost(self):
        assert margins.net_margin(100, 60, 8) == Decimal("32.00")

    def test_net_margin_default_packaging_is_eight(self):
        assert margins.net_margin(100, 60) == Decimal("32.00")

    def test_rounds_half_up(self):
        # (3 - 2) / 3 * 100 = 33.333...
        assert margins.margin(3, 2) == Decimal("33.33")
        # (8 - 7.99875) / 8 * 100 = 0.015625
        assert margins.margin("8", "7.99875") == Decimal("0.02")

    def test_amounts(self):
        assert margins.margin_amount("149.90", "80") == Decimal("69.90")
        assert margins.net_margin_amount("149.90", "80", "8") == Decimal("61.90")

    def test_missing_purchase_price_counts_as_zero(self):
        assert margins.margin(50, None) == Decimal("100.00")


class TestAverages:
    def test_average_excludes_non_positive_margins(self):
        products = [
            _product(100, 60),    # 40
            _product(100, 80),    # 20
            _product(100, 120),   # -20, excluded
            _product(100, 100),   # 0, excluded
        ]
        assert margins.average_margin(products) == Decimal("30.00")

    def test_average_skips_products_without_purchase_price(self):
        products = [_product(100, 60), _product(100, None), _product(100, 0)]
        assert margins.average_margin(products) == Decimal("40.00")

    def test_average_of_nothing_is_zero(self):
        assert margins.average_margin([]) == Decimal("0.00")
        assert margins.average_net_margin([], 8) == Decimal("0.00")

    def test_average_net_margin(self):
        products = [_product(100, 60), _product(200, 100)]
        # 32 and 46
        assert margins.average_net_margin(products, 8) == Decimal("39.00")


@pytest.mark.parametrize(
    "value,color",
    [
        (55, "success"),
        (40, "success"),
        (39.99, "warning"),
        (30, "warning"),
        (29.99, "error"),
        (-5, "error"),
    ],
)
def test_margin_color(value, color):
    assert margins.margin_color(value) == color
