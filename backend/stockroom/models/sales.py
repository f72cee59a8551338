from __future__ import annotations

from ..extensions import db
from ..money import to_float
from ..time_utils import to_utc_z, utcnow


PRICING_MODES = ("REGULAR", "PROMO", "BUNDLE")


class Sale(db.Model):
    """
    Recorded sale: either one product (product_id/quantity/price_per_unit)
    or a bundle of SaleItem rows.

    total_amount is always computed server side:
    - single: quantity x price_per_unit
    - bundle: sum(item.quantity x item.price_per_unit)

    The lots a sale drew from are kept in SaleAllocation so deleting or
    editing the sale restores exactly those lots.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_org_date", "org_id", "sale_date"),
        db.CheckConstraint("total_amount >= 0", name="ck_sales_total_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Single-product sale fields (NULL for bundles)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=True)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    pricing_mode = db.Column(db.String(16), nullable=False, default="REGULAR")
    bundle_price_total = db.Column(db.Numeric(12, 2), nullable=True)
    is_promo = db.Column(db.Boolean, nullable=False, default=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    notes = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    allocations = db.relationship(
        "SaleAllocation",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleAllocation.id",
    )

    @property
    def is_bundle(self) -> bool:
        return self.pricing_mode == "BUNDLE"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_per_unit": to_float(self.price_per_unit),
            "total_amount": to_float(self.total_amount),
            "pricing_mode": self.pricing_mode,
            "bundle_price_total": to_float(self.bundle_price_total),
            "is_promo": self.is_promo,
            "sale_date": to_utc_z(self.sale_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "allocations": [alloc.to_dict() for alloc in self.allocations],
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_per_unit": to_float(self.price_per_unit),
        }


class SaleAllocation(db.Model):
    """
    Units a sale took from one lot, with the lot's EUR unit cost at sale time.

    Written once when the sale is created; replayed in reverse when the sale
    is deleted or its quantity is edited.
    """
    __tablename__ = "sale_allocations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_allocations_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    shipment_item_id = db.Column(db.Integer, db.ForeignKey("shipment_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_eur = db.Column(db.Numeric(12, 2), nullable=True)

    shipment_item = db.relationship("ShipmentItem")

    def to_dict(self) -> dict:
        return {
            "shipment_item_id": self.shipment_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost_eur": to_float(self.unit_cost_eur),
        }
