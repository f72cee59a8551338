from __future__ import annotations

from ..extensions import db
from ..money import to_decimal, to_float
from ..time_utils import to_utc_z, utcnow


ARRIVAGE_STATUSES = ("PENDING", "IN_TRANSIT", "ARRIVED", "PROCESSED")
EXPENSE_TYPES = ("OPERATIONAL", "MARKETING", "UTILITIES", "SHIPPING", "OTHER")


class Arrivage(db.Model):
    """
    Inbound shipment grouping lots (ShipmentItem) and expenses.

    DERIVED COLUMNS: total_cost_eur, total_cost_dh, product_count and
    total_units are written only by ArrivageCostAggregator.recalculate().
    They are recomputed from scratch whenever a lot, a linked expense or the
    exchange rate changes; nothing patches them in place.

    The fixed charges (shipping, customs, packaging) are reported apart as
    fixed_costs_eur and are not part of total_cost_eur.
    """
    __tablename__ = "arrivages"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference", name="uq_arrivages_org_reference"),
        db.CheckConstraint("exchange_rate > 0", name="ck_arrivages_rate_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    reference = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    arrival_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # DH per EUR
    exchange_rate = db.Column(db.Numeric(10, 4), nullable=False)

    shipping_cost_eur = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    customs_cost_eur = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    packaging_cost_eur = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    total_cost_eur = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_cost_dh = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    product_count = db.Column(db.Integer, nullable=False, default=0)
    total_units = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("arrivages", lazy=True))

    def __repr__(self) -> str:
        return f"<Arrivage id={self.id} reference={self.reference!r} org_id={self.org_id}>"

    @property
    def fixed_costs_eur(self):
        return (
            to_decimal(self.shipping_cost_eur)
            + to_decimal(self.customs_cost_eur)
            + to_decimal(self.packaging_cost_eur)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "supplier_id": self.supplier_id,
            "reference": self.reference,
            "status": self.status,
            "arrival_date": to_utc_z(self.arrival_date) if self.arrival_date else None,
            "exchange_rate": to_float(self.exchange_rate),
            "shipping_cost_eur": to_float(self.shipping_cost_eur),
            "customs_cost_eur": to_float(self.customs_cost_eur),
            "packaging_cost_eur": to_float(self.packaging_cost_eur),
            "fixed_costs_eur": to_float(self.fixed_costs_eur),
            "total_cost_eur": to_float(self.total_cost_eur),
            "total_cost_dh": to_float(self.total_cost_dh),
            "product_count": self.product_count,
            "total_units": self.total_units,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ShipmentItem(db.Model):
    """
    A lot: units of one product acquired in one arrivage at one unit cost.

    INVARIANTS:
    - quantity_remaining == quantity - quantity_sold
    - quantity_remaining >= 0 and quantity_sold >= 0

    created_at orders lots for FIFO allocation; it is set in Python so lots
    created within the same second still sort in creation order.
    """
    __tablename__ = "shipment_items"
    __table_args__ = (
        db.Index("ix_shipment_items_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity_sold >= 0", name="ck_shipment_items_sold_nonneg"),
        db.CheckConstraint("quantity_remaining >= 0", name="ck_shipment_items_remaining_nonneg"),
        db.CheckConstraint(
            "quantity_remaining = quantity - quantity_sold",
            name="ck_shipment_items_remaining_balance",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    arrivage_id = db.Column(db.Integer, db.ForeignKey("arrivages.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)
    quantity_remaining = db.Column(db.Integer, nullable=False)

    cost_per_unit_eur = db.Column(db.Numeric(12, 2), nullable=True)
    cost_per_unit_dh = db.Column(db.Numeric(12, 2), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    arrivage = db.relationship("Arrivage", backref=db.backref("items", lazy=True))
    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<ShipmentItem id={self.id} arrivage_id={self.arrivage_id} product_id={self.product_id} "
            f"qty={self.quantity} sold={self.quantity_sold}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "arrivage_id": self.arrivage_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "quantity_sold": self.quantity_sold,
            "quantity_remaining": self.quantity_remaining,
            "cost_per_unit_eur": to_float(self.cost_per_unit_eur),
            "cost_per_unit_dh": to_float(self.cost_per_unit_dh),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    """Cost outside the lots; when linked to an arrivage it adds to that arrivage's total."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_org_date", "org_id", "date"),
        db.CheckConstraint("amount_eur >= 0", name="ck_expenses_eur_nonneg"),
        db.CheckConstraint("amount_dh >= 0", name="ck_expenses_dh_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    arrivage_id = db.Column(db.Integer, db.ForeignKey("arrivages.id"), nullable=True, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    amount_eur = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_dh = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    description = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="OTHER")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    arrivage = db.relationship("Arrivage", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "arrivage_id": self.arrivage_id,
            "date": to_utc_z(self.date),
            "amount_eur": to_float(self.amount_eur),
            "amount_dh": to_float(self.amount_dh),
            "description": self.description,
            "type": self.type,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
