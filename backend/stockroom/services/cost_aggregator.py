# Overview: Recomputes an arrivage's derived cost totals from its lots and expenses.

"""
Arrivage totals are a cache over three sources:
- lots (ShipmentItem) of active products: quantity x unit EUR cost
- products linked through Product.arrivage_id that have no lot in the arrivage
- the EUR amount of linked expenses

  total_cost_eur = round2(items cost + expenses)
  total_cost_dh  = round2(total_cost_eur x exchange rate)

The arrivage's fixed charges (shipping, customs, packaging) stay out of the
total; Arrivage.fixed_costs_eur reports them and the profit report spreads
them as overhead.

Unit EUR cost resolution, first non-empty wins:
  lot EUR cost -> lot DH cost / rate -> product EUR price -> product MAD price / rate

compute() only reads. recalculate() writes the totals but does not commit;
callers own the transaction so the totals land together with the change that triggered them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from ..errors import NotFoundError
from ..models import Arrivage, Expense, Product, ShipmentItem
from ..money import ZERO, round2, to_decimal


def unit_cost_eur(lot: ShipmentItem | None, product: Product, exchange_rate) -> Decimal:
    rate = to_decimal(exchange_rate)
    if lot is not None:
        if lot.cost_per_unit_eur is not None:
            return to_decimal(lot.cost_per_unit_eur)
        if lot.cost_per_unit_dh is not None and rate > 0:
            return to_decimal(lot.cost_per_unit_dh) / rate
    if product.purchase_price_eur is not None:
        return to_decimal(product.purchase_price_eur)
    if product.purchase_price_mad is not None and rate > 0:
        return to_decimal(product.purchase_price_mad) / rate
    return ZERO


class ArrivageCostAggregator:
    def __init__(self, session):
        self.session = session

    def _get_arrivage(self, arrivage_id: int, org_id: int | None) -> Arrivage:
        query = self.session.query(Arrivage).filter_by(id=arrivage_id)
        if org_id is not None:
            query = query.filter_by(org_id=org_id)
        arrivage = query.first()
        if arrivage is None:
            raise NotFoundError("Arrivage not found", details={"arrivage_id": arrivage_id})
        return arrivage

    def items_cost_eur(self, arrivage: Arrivage) -> tuple[Decimal, int, int]:
        """Return (items cost in EUR, distinct product count, total units)."""
        lots = (
            self.session.query(ShipmentItem)
            .join(Product, Product.id == ShipmentItem.product_id)
            .filter(ShipmentItem.arrivage_id == arrivage.id, Product.is_active.is_(True))
            .all()
        )

        total = ZERO
        product_ids = set()
        units = 0
        for lot in lots:
            total += lot.quantity * unit_cost_eur(lot, lot.product, arrivage.exchange_rate)
            product_ids.add(lot.product_id)
            units += lot.quantity

        # Products tagged with this arrivage but never given a lot
        linked = (
            self.session.query(Product)
            .filter(
                Product.arrivage_id == arrivage.id,
                Product.org_id == arrivage.org_id,
                Product.is_active.is_(True),
            )
            .all()
        )
        for product in linked:
            if product.id in product_ids:
                continue
            total += product.quantity_received * unit_cost_eur(None, product, arrivage.exchange_rate)
            product_ids.add(product.id)
            units += product.quantity_received

        return total, len(product_ids), units

    def expenses_eur(self, arrivage: Arrivage) -> Decimal:
        expenses = self.session.query(Expense.amount_eur).filter_by(arrivage_id=arrivage.id).all()
        return sum((to_decimal(row.amount_eur) for row in expenses), ZERO)

    def compute(self, arrivage: Arrivage) -> dict:
        """Fresh totals for the arrivage, without writing them."""
        items_cost, product_count, total_units = self.items_cost_eur(arrivage)
        total_eur = round2(items_cost + self.expenses_eur(arrivage))
        return {
            "total_cost_eur": total_eur,
            "total_cost_dh": round2(total_eur * to_decimal(arrivage.exchange_rate)),
            "product_count": product_count,
            "total_units": total_units,
        }

    def drift(self, arrivage: Arrivage) -> dict:
        """Stored totals that disagree with a fresh computation, as {field: (stored, fresh)}."""
        fresh = self.compute(arrivage)
        stored = {
            "total_cost_eur": round2(arrivage.total_cost_eur),
            "total_cost_dh": round2(arrivage.total_cost_dh),
            "product_count": arrivage.product_count,
            "total_units": arrivage.total_units,
        }
        return {key: (stored[key], fresh[key]) for key in fresh if stored[key] != fresh[key]}

    def recalculate(self, arrivage_id: int, *, org_id: int | None = None) -> Arrivage:
        """
        Rewrite total_cost_eur, total_cost_dh, product_count and total_units.

        Idempotent: running it twice on unchanged data yields the same totals.
        Flushes but does not commit.
        """
        arrivage = self._get_arrivage(arrivage_id, org_id)
        # Pending lot/expense changes must be visible to the queries below
        self.session.flush()

        for key, value in self.compute(arrivage).items():
            setattr(arrivage, key, value)
        self.session.flush()
        return arrivage

    def recalculate_many(self, arrivage_ids: Iterable[int | None], *, org_id: int | None = None) -> list[Arrivage]:
        """Recalculate each distinct non-null id once, in first-seen order."""
        seen = []
        for arrivage_id in arrivage_ids:
            if arrivage_id is None or arrivage_id in seen:
                continue
            seen.append(arrivage_id)
        return [self.recalculate(arrivage_id, org_id=org_id) for arrivage_id in seen]
