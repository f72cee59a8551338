from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("SALE", "ADJUSTMENT", "ARRIVAGE", "RETURN")


class StockMovement(db.Model):
    """
    Append-only audit row for every change to a product's stock.

    INVARIANT: new_qty == previous_qty + quantity (quantity is signed).

    Rows are never updated or deleted; replaying them explains how a
    product's current stock was reached.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_org_type", "org_id", "type"),
        db.CheckConstraint("new_qty = previous_qty + quantity", name="ck_stock_movements_balance"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_qty = db.Column(db.Integer, nullable=False)
    new_qty = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "reference": self.reference,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
