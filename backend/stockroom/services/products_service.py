# Overview: Product catalog operations with derived stock and margin views.

"""
Products Service with Multi-Tenant Support

MULTI-TENANT: all product operations are scoped to the caller's org_id.
SKUs are unique per organization.

Stock counters are not writable here: units arrive through arrivage lots
and are corrected through the stock ledger, both of which append movements.

purchase_price_mad is derived from purchase_price_eur and the product's
arrivage exchange rate (or the configured default rate) when the client
sends only the EUR price.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..models import Arrivage, Brand, Category, Product, ShipmentItem
from ..money import round2, to_decimal
from ..permissions import Permission, check_permission
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import margins
from .cost_aggregator import ArrivageCostAggregator
from .shipment_service import paginate

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "arrivage_id", "brand_id", "category_id",
        "purchase_price_eur", "purchase_price_mad", "selling_price_dh",
        "reorder_level", "is_active",
    },
    required_on_create={"sku", "name", "selling_price_dh"},
)

STOCK_FILTERS = ("low", "ok", "out")


def product_view(product: Product, packaging_cost) -> dict:
    """Product dict plus the derived margin figures shown in listings."""
    data = product.to_dict()
    data["margin"] = float(margins.margin(product.selling_price_dh, product.purchase_price_mad))
    data["net_margin"] = float(
        margins.net_margin(product.selling_price_dh, product.purchase_price_mad, packaging_cost)
    )
    data["margin_amount"] = float(margins.margin_amount(product.selling_price_dh, product.purchase_price_mad))
    data["margin_color"] = margins.margin_color(data["margin"])
    data["exchange_rate"] = float(product.arrivage.exchange_rate) if product.arrivage else None
    return data


class ProductService:
    def __init__(self, session):
        self.session = session

    def get_product(self, org_id: int, product_id: int) -> Product:
        product = self.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    def _check_refs(self, org_id: int, patch: dict) -> None:
        for key, model, label in (
            ("arrivage_id", Arrivage, "Arrivage"),
            ("brand_id", Brand, "Brand"),
            ("category_id", Category, "Category"),
        ):
            ref_id = patch.get(key)
            if ref_id is None:
                continue
            if self.session.query(model.id).filter_by(id=ref_id, org_id=org_id).first() is None:
                raise NotFoundError(f"{label} not found", details={key: ref_id})

    def _derive_mad(self, product: Product, patch: dict) -> None:
        if "purchase_price_eur" not in patch or "purchase_price_mad" in patch:
            return
        if product.purchase_price_eur is None:
            return
        rate = None
        if product.arrivage_id is not None:
            arrivage = self.session.get(Arrivage, product.arrivage_id)
            rate = arrivage.exchange_rate if arrivage is not None else None
        if rate is None:
            rate = current_app.config.get("DEFAULT_EXCHANGE_RATE", "10.85")
        product.purchase_price_mad = round2(to_decimal(product.purchase_price_eur) * to_decimal(rate))

    def list_products(
        self,
        org_id: int,
        *,
        search: str | None = None,
        category_id: int | None = None,
        brand_id: int | None = None,
        arrivage_id: int | None = None,
        stock: str | None = None,
        include_inactive: bool = False,
        packaging_cost=None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> dict:
        """
        Tenant-scoped product listing with optional filters and pagination.

        stock: "low" (0 < stock <= reorder_level), "ok" (above reorder level)
        or "out" (zero stock).
        """
        query = self.session.query(Product).filter(Product.org_id == org_id)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if brand_id is not None:
            query = query.filter(Product.brand_id == brand_id)
        if arrivage_id is not None:
            query = query.filter(Product.arrivage_id == arrivage_id)

        current_stock = Product.quantity_received - Product.quantity_sold
        if stock == "low":
            query = query.filter(current_stock > 0, current_stock <= Product.reorder_level)
        elif stock == "ok":
            query = query.filter(current_stock > Product.reorder_level)
        elif stock == "out":
            query = query.filter(current_stock <= 0)

        query = query.order_by(Product.name.asc(), Product.id.asc())
        if packaging_cost is None:
            packaging_cost = margins.DEFAULT_PACKAGING_COST
        return paginate(query, page, per_page, serialize=lambda p: product_view(p, packaging_cost))

    def create_product(self, actor, payload: dict) -> Product:
        """
        Raises:
            ValidationError: bad payload
            NotFoundError: arrivage/brand/category outside the organization
            ConflictError: SKU already used in this organization
        """
        check_permission(actor.role, Permission.PRODUCTS_CREATE)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        self._check_refs(actor.org_id, patch)

        product = Product(org_id=actor.org_id, quantity_received=0, quantity_sold=0, **patch)
        if product.reorder_level is None:
            product.reorder_level = current_app.config.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", 5)
        self._derive_mad(product, patch)
        self.session.add(product)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("SKU already exists in this organization", details={"sku": patch.get("sku")})
        return product

    def update_product(self, actor, product_id: int, payload: dict) -> Product:
        check_permission(actor.role, Permission.PRODUCTS_UPDATE)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        self._check_refs(actor.org_id, patch)

        product = self.get_product(actor.org_id, product_id)
        previous_arrivage_id = product.arrivage_id
        for key, value in patch.items():
            setattr(product, key, value)
        self._derive_mad(product, patch)

        # Linked products without lots count toward their arrivage's cost
        try:
            if {"arrivage_id", "purchase_price_eur", "purchase_price_mad", "is_active"} & patch.keys():
                ArrivageCostAggregator(self.session).recalculate_many(
                    [previous_arrivage_id, product.arrivage_id], org_id=actor.org_id
                )
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("SKU already exists in this organization", details={"sku": patch.get("sku")})
        return product

    def delete_product(self, actor, product_id: int) -> Product:
        """Soft delete: history stays, the product leaves listings and aggregates."""
        check_permission(actor.role, Permission.PRODUCTS_DELETE)
        product = self.get_product(actor.org_id, product_id)
        product.is_active = False

        arrivage_ids = {lot.arrivage_id for lot in product.lots}
        arrivage_ids.add(product.arrivage_id)
        ArrivageCostAggregator(self.session).recalculate_many(sorted(i for i in arrivage_ids if i is not None))
        self.session.commit()
        return product

    def available_stock(self, org_id: int) -> list[dict]:
        """Active products with stock left in their lots."""
        sellable = func.coalesce(func.sum(ShipmentItem.quantity_remaining), 0)
        rows = (
            self.session.query(Product, sellable.label("available"))
            .outerjoin(ShipmentItem, ShipmentItem.product_id == Product.id)
            .filter(Product.org_id == org_id, Product.is_active.is_(True))
            .group_by(Product.id)
            .order_by(Product.name.asc(), Product.id.asc())
            .all()
        )
        result = []
        for product, in_lots in rows:
            available = min(int(in_lots), product.current_stock)
            if available <= 0:
                continue
            result.append({
                "id": product.id,
                "sku": product.sku,
                "name": product.name,
                "selling_price_dh": float(to_decimal(product.selling_price_dh)),
                "purchase_price_mad": float(to_decimal(product.purchase_price_mad)),
                "quantity_received": product.quantity_received,
                "quantity_sold": product.quantity_sold,
                "current_stock": product.current_stock,
                "available_stock": available,
            })
        return result
