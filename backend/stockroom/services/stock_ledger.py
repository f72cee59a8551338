# Overview: Service-layer operations for product stock counters and the movement log.

"""
Stock Ledger Invariants (authoritative)

Counters:
- Product.quantity_received >= Product.quantity_sold >= 0 at all times.
- current stock = quantity_received - quantity_sold; it is derived, never stored.

Movement log:
- Every stock-affecting call appends exactly one StockMovement per product it
  touches, in the same DB transaction as the counter update.
- new_qty == previous_qty + quantity on every row (also a CHECK constraint).
- Rows are never updated or deleted.

Manual corrections:
- adjust() moves quantity_received only; a negative delta models a
  correction to what was received, not a sale.
- A correction that would take stock below zero is rejected before any write.
- reset() overwrites both counters to hit an exact stock figure and is
  reserved for SUPER_ADMIN.
"""

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError, ConsistencyError
from ..models import Product, StockMovement
from ..permissions import Permission, check_permission
from .concurrency import begin_write, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 200
MAX_NOTES_LENGTH = 500


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def _clean_reason(reason, notes) -> tuple[str, str | None]:
    reason = (reason or "").strip() if isinstance(reason, str) or reason is None else None
    if not reason:
        raise ValidationError("reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason must be less than {MAX_REASON_LENGTH} characters")
    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        notes = notes.strip() or None
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes must be less than {MAX_NOTES_LENGTH} characters")
    return reason, notes


class StockLedger:
    """Product stock counters plus their append-only movement log."""

    def __init__(self, session):
        self.session = session

    def get_product(self, org_id: int, product_id: int, *, lock: bool = False) -> Product:
        query = self.session.query(Product).filter_by(id=product_id, org_id=org_id)
        if lock:
            query = lock_for_update(query)
        product = query.first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    def record(
        self,
        product: Product,
        *,
        type: str,
        quantity: int,
        previous_qty: int,
        reference: str | None = None,
        notes: str | None = None,
        user_id: int | None = None,
    ) -> StockMovement:
        """
        Append one movement row without committing.

        Callers pass the stock figure they observed before their own counter
        update; new_qty is derived so the balance invariant cannot be broken.
        """
        new_qty = previous_qty + quantity
        if new_qty < 0:
            raise ConsistencyError(
                "Movement would record negative stock",
                details={"product_id": product.id, "previous_qty": previous_qty, "quantity": quantity},
            )
        movement = StockMovement(
            org_id=product.org_id,
            product_id=product.id,
            type=type,
            quantity=quantity,
            previous_qty=previous_qty,
            new_qty=new_qty,
            reference=reference,
            notes=notes,
            user_id=user_id,
        )
        self.session.add(movement)
        return movement

    def adjust(self, product_id: int, delta: int, reason: str, notes: str | None, actor) -> dict:
        """
        Apply a manual correction of `delta` units.

        Returns {"product_id", "previous_stock", "new_stock"}.
        Raises ValidationError (zero delta, stock below zero, bad reason) with
        no writes, NotFoundError for another org's product.
        """
        check_permission(actor.role, Permission.STOCK_ADJUST)
        delta = _require_int(delta, "delta")
        if delta == 0:
            raise ValidationError("Delta must be non-zero")
        reason, notes = _clean_reason(reason, notes)

        def _op():
            begin_write(self.session)
            product = self.get_product(actor.org_id, product_id, lock=True)

            current_stock = product.quantity_received - product.quantity_sold
            new_stock = current_stock + delta
            if new_stock < 0:
                raise ValidationError(
                    f"Cannot adjust stock below zero. Current stock: {current_stock}, Delta: {delta}",
                    details={"current_stock": current_stock, "delta": delta},
                )

            # Negative deltas correct what was received; they are not sales
            product.quantity_received += delta

            self.record(
                product,
                type="ADJUSTMENT",
                quantity=delta,
                previous_qty=current_stock,
                reference="Stock Adjustment (decrease)" if delta < 0 else "Stock Adjustment (increase)",
                notes=notes or reason,
                user_id=actor.id,
            )
            self.session.commit()

            logger.info(
                "stock adjusted product_id=%s delta=%s %s->%s by user_id=%s",
                product.id, delta, current_stock, new_stock, actor.id,
            )
            return {"product_id": product.id, "previous_stock": current_stock, "new_stock": new_stock}

        return run_with_retry(self.session, _op)

    def reset(
        self,
        product_id: int,
        new_stock: int,
        reason: str,
        notes: str | None,
        actor,
        *,
        reset_sold: bool = True,
    ) -> dict:
        """
        Overwrite the counters so current stock equals `new_stock`.

        reset_sold=True zeroes quantity_sold and sets quantity_received to
        new_stock; otherwise quantity_sold is kept and quantity_received
        becomes new_stock + quantity_sold.
        """
        check_permission(actor.role, Permission.STOCK_RESET)
        new_stock = _require_int(new_stock, "new_stock")
        if new_stock < 0:
            raise ValidationError("new_stock must be >= 0")
        reason, notes = _clean_reason(reason, notes)

        def _op():
            begin_write(self.session)
            product = self.get_product(actor.org_id, product_id, lock=True)

            current_stock = product.quantity_received - product.quantity_sold
            quantity_sold = 0 if reset_sold else product.quantity_sold
            quantity_received = new_stock if reset_sold else new_stock + product.quantity_sold
            if quantity_received < 0 or quantity_sold < 0:
                raise ValidationError("Invalid stock values")

            product.quantity_received = quantity_received
            product.quantity_sold = quantity_sold

            self.record(
                product,
                type="ADJUSTMENT",
                quantity=new_stock - current_stock,
                previous_qty=current_stock,
                reference="Stock Reset",
                notes=notes or reason,
                user_id=actor.id,
            )
            self.session.commit()

            logger.info(
                "stock reset product_id=%s %s->%s reset_sold=%s by user_id=%s",
                product.id, current_stock, new_stock, reset_sold, actor.id,
            )
            return {
                "product_id": product.id,
                "new_stock": new_stock,
                "quantity_received": quantity_received,
                "quantity_sold": quantity_sold,
            }

        return run_with_retry(self.session, _op)

    def movements(self, org_id: int, product_id: int, *, limit: int = 200) -> list[StockMovement]:
        self.get_product(org_id, product_id)
        return (
            self.session.query(StockMovement)
            .filter_by(org_id=org_id, product_id=product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )
