from __future__ import annotations

from ..extensions import db
from ..money import to_float
from ..time_utils import to_utc_z


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_brands_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "org_id": self.org_id, "name": self.name, "description": self.description}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "org_id": self.org_id, "name": self.name, "description": self.description}


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_suppliers_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    contact_info = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "org_id": self.org_id, "name": self.name, "contact_info": self.contact_info}


class Product(db.Model):
    """
    Product master data with running stock counters.

    MULTI-TENANT: Products are scoped to organizations via org_id; SKUs are
    unique within an organization.

    STOCK COUNTERS:
    - quantity_received: cumulative units ever received (lots + adjustments)
    - quantity_sold: cumulative units ever sold
    - current_stock is derived, never stored: max(0, received - sold)

    Only the stock ledger, the sale allocator and the arrivage service write
    the counters; each write appends a StockMovement in the same transaction.

    is_active=False is a soft delete: the product leaves stock and margin
    aggregates but keeps its sales and movement history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        db.Index("ix_products_org_name", "org_id", "name"),
        db.CheckConstraint("quantity_received >= 0", name="ck_products_received_nonneg"),
        db.CheckConstraint("quantity_sold >= 0", name="ck_products_sold_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)

    arrivage_id = db.Column(db.Integer, db.ForeignKey("arrivages.id"), nullable=True, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    # Purchase price in EUR and in MAD (EUR x arrivage exchange rate)
    purchase_price_eur = db.Column(db.Numeric(12, 2), nullable=True)
    purchase_price_mad = db.Column(db.Numeric(12, 2), nullable=True)
    selling_price_dh = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    arrivage = db.relationship("Arrivage", backref=db.backref("linked_products", lazy=True))
    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def current_stock(self) -> int:
        return max(0, (self.quantity_received or 0) - (self.quantity_sold or 0))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "arrivage_id": self.arrivage_id,
            "brand_id": self.brand_id,
            "category_id": self.category_id,
            "purchase_price_eur": to_float(self.purchase_price_eur),
            "purchase_price_mad": to_float(self.purchase_price_mad),
            "selling_price_dh": to_float(self.selling_price_dh),
            "quantity_received": self.quantity_received,
            "quantity_sold": self.quantity_sold,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
