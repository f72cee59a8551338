# Overview: Read-only KPIs for the dashboard and the per-arrivage profit report.

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func

from ..models import Arrivage, Expense, Product, Sale, SaleAllocation, ShipmentItem
from ..money import ZERO, round2, to_decimal
from ..time_utils import start_of_month, to_utc_z
from . import margins
from .settings_service import SettingsService


def _is_low(product: Product) -> bool:
    stock = product.quantity_received - product.quantity_sold
    return stock <= product.reorder_level or stock == 0


class DashboardService:
    def __init__(self, session):
        self.session = session
        self.settings = SettingsService(session)

    def _active_products(self, org_id: int) -> list[Product]:
        return self.session.query(Product).filter(Product.org_id == org_id, Product.is_active.is_(True)).all()

    def stats(self, org_id: int, *, now=None) -> dict:
        """
        Headline numbers for one organization.

        inventory_value is stock x MAD purchase price over active products;
        a product counts as low stock when stock <= reorder_level.
        """
        products = self._active_products(org_id)
        packaging_cost = self.settings.packaging_cost(org_id)

        inventory_value = ZERO
        for p in products:
            stock = p.quantity_received - p.quantity_sold
            if stock > 0:
                inventory_value += to_decimal(p.purchase_price_mad) * stock

        total_revenue = (
            self.session.query(func.coalesce(func.sum(Sale.total_amount), 0))
            .filter(Sale.org_id == org_id)
            .scalar()
        )
        sales_this_month = (
            self.session.query(func.count(Sale.id))
            .filter(Sale.org_id == org_id, Sale.sale_date >= start_of_month(now))
            .scalar()
        )

        return {
            "total_products": len(products),
            "total_arrivages": self.session.query(func.count(Arrivage.id)).filter(Arrivage.org_id == org_id).scalar(),
            "sales_this_month": sales_this_month,
            "inventory_value": float(round2(inventory_value)),
            "total_revenue": float(round2(total_revenue)),
            "low_stock_count": sum(1 for p in products if _is_low(p)),
            "average_margin": float(margins.average_margin(products)),
            "average_net_margin": float(margins.average_net_margin(products, packaging_cost)),
            "packaging_cost": float(packaging_cost),
        }

    def low_stock(self, org_id: int, *, limit: int = 20) -> list[dict]:
        rows = [p for p in self._active_products(org_id) if _is_low(p)]
        rows.sort(key=lambda p: (p.quantity_received - p.quantity_sold, p.name))
        return [
            {
                "id": p.id,
                "sku": p.sku,
                "name": p.name,
                "current_stock": p.current_stock,
                "reorder_level": p.reorder_level,
                "arrivage_id": p.arrivage_id,
            }
            for p in rows[:limit]
        ]

    def _sale_prices(self, org_id: int) -> dict[tuple[int, int], Decimal]:
        """(sale_id, product_id) -> unit price the product sold at."""
        prices = {}
        for sale in self.session.query(Sale).filter(Sale.org_id == org_id).all():
            if sale.is_bundle:
                for item in sale.items:
                    prices[(sale.id, item.product_id)] = to_decimal(item.price_per_unit)
            else:
                prices[(sale.id, sale.product_id)] = to_decimal(sale.price_per_unit)
        return prices

    def profit_by_arrivage(self, org_id: int) -> list[dict]:
        """
        Revenue and profit per arrivage, attributed through sale allocations.

        Each allocated unit brings its sale price as revenue and its lot's EUR
        cost (at the arrivage rate) as cost of goods. Net profit also takes
        the arrivage's fixed charges and expenses, spread over its units in
        proportion to the units sold.
        """
        prices = self._sale_prices(org_id)
        revenue = defaultdict(lambda: ZERO)
        cogs_eur = defaultdict(lambda: ZERO)
        sold = defaultdict(int)

        allocations = (
            self.session.query(SaleAllocation, ShipmentItem.arrivage_id)
            .join(ShipmentItem, ShipmentItem.id == SaleAllocation.shipment_item_id)
            .filter(ShipmentItem.org_id == org_id)
            .all()
        )
        for allocation, arrivage_id in allocations:
            unit_price = prices.get((allocation.sale_id, allocation.product_id), ZERO)
            revenue[arrivage_id] += unit_price * allocation.quantity
            cogs_eur[arrivage_id] += to_decimal(allocation.unit_cost_eur) * allocation.quantity
            sold[arrivage_id] += allocation.quantity

        expense_totals = dict(
            self.session.query(Expense.arrivage_id, func.coalesce(func.sum(Expense.amount_eur), 0))
            .filter(Expense.org_id == org_id, Expense.arrivage_id.isnot(None))
            .group_by(Expense.arrivage_id)
            .all()
        )

        report = []
        arrivages = (
            self.session.query(Arrivage)
            .filter(Arrivage.org_id == org_id)
            .order_by(Arrivage.created_at.desc(), Arrivage.id.desc())
            .all()
        )
        for arrivage in arrivages:
            rate = to_decimal(arrivage.exchange_rate)
            revenue_dh = revenue[arrivage.id]
            cogs_dh = cogs_eur[arrivage.id] * rate
            gross_dh = revenue_dh - cogs_dh

            overhead_eur = arrivage.fixed_costs_eur + to_decimal(expense_totals.get(arrivage.id))
            units = arrivage.total_units or 0
            overhead_dh = overhead_eur * rate / units * sold[arrivage.id] if units else ZERO
            net_dh = gross_dh - overhead_dh

            report.append({
                "arrivage_id": arrivage.id,
                "reference": arrivage.reference,
                "status": arrivage.status,
                "arrival_date": to_utc_z(arrivage.arrival_date) if arrivage.arrival_date else None,
                "total_cost_eur": float(to_decimal(arrivage.total_cost_eur)),
                "total_cost_dh": float(to_decimal(arrivage.total_cost_dh)),
                "total_revenue_dh": float(round2(revenue_dh)),
                "total_revenue_eur": float(round2(revenue_dh / rate)),
                "gross_profit_dh": float(round2(gross_dh)),
                "gross_profit_eur": float(round2(gross_dh / rate)),
                "net_profit_dh": float(round2(net_dh)),
                "net_profit_eur": float(round2(net_dh / rate)),
                "margin_percent": float(round2(gross_dh / revenue_dh * 100)) if revenue_dh > 0 else 0.0,
                "product_count": arrivage.product_count,
                "total_quantity_sold": sold[arrivage.id],
            })
        return report
