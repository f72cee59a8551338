# Overview: Pure margin math used by product views and dashboard KPIs.

"""
Margin Calculator

All inputs may be int, float, str or Decimal; results are Decimal rounded
to 2 places (half up). Selling price is the denominator, so a zero selling
price yields 0 rather than a division error.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from ..money import ZERO, round2, to_decimal

DEFAULT_PACKAGING_COST = Decimal("8.00")

SUCCESS_THRESHOLD = Decimal("40")
WARNING_THRESHOLD = Decimal("30")


def margin(selling_price, purchase_price) -> Decimal:
    """Gross margin as a percentage of the selling price."""
    selling = to_decimal(selling_price)
    if selling == 0:
        return round2(ZERO)
    purchase = to_decimal(purchase_price)
    return round2((selling - purchase) / selling * 100)


def net_margin(selling_price, purchase_price, packaging_cost=DEFAULT_PACKAGING_COST) -> Decimal:
    """Margin percentage after the per-unit packaging cost."""
    selling = to_decimal(selling_price)
    if selling == 0:
        return round2(ZERO)
    purchase = to_decimal(purchase_price)
    packaging = to_decimal(packaging_cost)
    return round2((selling - purchase - packaging) / selling * 100)


def margin_amount(selling_price, purchase_price) -> Decimal:
    return round2(to_decimal(selling_price) - to_decimal(purchase_price))


def net_margin_amount(selling_price, purchase_price, packaging_cost=DEFAULT_PACKAGING_COST) -> Decimal:
    return round2(to_decimal(selling_price) - to_decimal(purchase_price) - to_decimal(packaging_cost))


def _priced(products: Iterable) -> list:
    # Products without a purchase price have no meaningful margin
    return [
        p for p in products
        if p.purchase_price_mad is not None and to_decimal(p.purchase_price_mad) > 0
    ]


def _average(values: list[Decimal]) -> Decimal:
    positive = [v for v in values if v > 0]
    if not positive:
        return round2(ZERO)
    return round2(sum(positive, ZERO) / len(positive))


def average_margin(products: Iterable) -> Decimal:
    """
    Mean gross margin over products with a purchase price.

    Non-positive margins are left out of the mean, so loss-making items do
    not pull the KPI down.
    """
    return _average([margin(p.selling_price_dh, p.purchase_price_mad) for p in _priced(products)])


def average_net_margin(products: Iterable, packaging_cost=DEFAULT_PACKAGING_COST) -> Decimal:
    """Same exclusion rule as average_margin, on net margins."""
    return _average([
        net_margin(p.selling_price_dh, p.purchase_price_mad, packaging_cost)
        for p in _priced(products)
    ])


def margin_color(value) -> str:
    value = to_decimal(value)
    if value >= SUCCESS_THRESHOLD:
        return "success"
    if value >= WARNING_THRESHOLD:
        return "warning"
    return "error"
