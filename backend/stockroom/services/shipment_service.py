# Overview: Arrivage (inbound shipment) and lot management.

"""
Arrivage Service with Multi-Tenant Support

MULTI-TENANT: every arrivage, lot and product lookup is filtered by org_id;
an id from another organization behaves exactly like a missing id.

Lots (ShipmentItem) are the only source of sellable stock:
- creating a lot adds its quantity to Product.quantity_received and appends an
  ARRIVAGE movement
- editing a lot's quantity moves quantity_received by the difference; it can
  never go below what the lot has already sold
- a lot with sales cannot be deleted
Every change here ends with ArrivageCostAggregator.recalculate() on each
arrivage it touched, inside the same transaction.

Lot unit costs:
- a lot priced in EUR carries cost_per_unit_dh = round2(EUR x arrivage rate);
  it is re-derived when the lot moves or the arrivage rate changes
- a lot priced only in DH keeps the DH figure it was entered with
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..money import round2, to_decimal
from ..models import ARRIVAGE_STATUSES, Arrivage, Product, ShipmentItem, Supplier
from ..permissions import Permission, check_permission
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_arrivage,
    enforce_rules_shipment_item,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .cost_aggregator import ArrivageCostAggregator
from .stock_ledger import StockLedger

ARRIVAGE_POLICY = ModelValidationPolicy(
    writable_fields={
        "reference", "supplier_id", "status", "arrival_date", "exchange_rate",
        "shipping_cost_eur", "customs_cost_eur", "packaging_cost_eur", "notes",
    },
    required_on_create={"reference", "exchange_rate"},
)

LOT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "cost_per_unit_eur", "cost_per_unit_dh", "arrivage_id"},
    required_on_create={"product_id", "quantity"},
)

# Changing any of these invalidates the stored totals and lot DH costs
COST_FIELDS = {"exchange_rate"}


def price_lot(lot: ShipmentItem, arrivage: Arrivage) -> None:
    if lot.cost_per_unit_eur is not None:
        lot.cost_per_unit_dh = round2(to_decimal(lot.cost_per_unit_eur) * to_decimal(arrivage.exchange_rate))


def paginate(query, page: int | None, per_page: int | None, serialize=None) -> dict:
    serialize = serialize or (lambda row: row.to_dict())
    if page is None:
        rows = query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


class ArrivageService:
    def __init__(self, session):
        self.session = session
        self.aggregator = ArrivageCostAggregator(session)
        self.ledger = StockLedger(session)

    # ------------------------------------------------------------------
    # Arrivages
    # ------------------------------------------------------------------

    def get_arrivage(self, org_id: int, arrivage_id: int, *, lock: bool = False) -> Arrivage:
        query = self.session.query(Arrivage).filter_by(id=arrivage_id, org_id=org_id)
        if lock:
            query = lock_for_update(query)
        arrivage = query.first()
        if arrivage is None:
            raise NotFoundError("Arrivage not found", details={"arrivage_id": arrivage_id})
        return arrivage

    def _check_supplier(self, org_id: int, supplier_id: int | None) -> None:
        if supplier_id is None:
            return
        exists = self.session.query(Supplier.id).filter_by(id=supplier_id, org_id=org_id).first()
        if exists is None:
            raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})

    def list_arrivages(self, org_id: int, *, status: str | None = None, page=None, per_page=None) -> dict:
        query = self.session.query(Arrivage).filter_by(org_id=org_id)
        if status:
            query = query.filter_by(status=status)
        query = query.order_by(Arrivage.created_at.desc(), Arrivage.id.desc())
        return paginate(query, page, per_page)

    def arrivage_detail(self, org_id: int, arrivage_id: int) -> dict:
        arrivage = self.get_arrivage(org_id, arrivage_id)
        data = arrivage.to_dict()
        data["items"] = [lot.to_dict() for lot in sorted(arrivage.items, key=lambda l: (l.created_at, l.id))]
        data["expenses"] = [e.to_dict() for e in arrivage.expenses]
        data["linked_product_ids"] = [p.id for p in arrivage.linked_products]
        return data

    def create_arrivage(self, actor, payload: dict) -> Arrivage:
        """
        Create an arrivage from a client payload.

        Raises:
            ValidationError: bad payload or non-positive exchange rate
            ConflictError: reference already used in this organization
        """
        check_permission(actor.role, Permission.ARRIVAGES_CREATE)
        patch = validate_payload(model=Arrivage, payload=payload, policy=ARRIVAGE_POLICY, partial=False)
        enforce_rules_arrivage(patch, ARRIVAGE_STATUSES)
        self._check_supplier(actor.org_id, patch.get("supplier_id"))

        arrivage = Arrivage(org_id=actor.org_id, **patch)
        self.session.add(arrivage)
        try:
            self.session.flush()
            self.aggregator.recalculate(arrivage.id)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Arrivage reference already exists in this organization")
        return arrivage

    def update_arrivage(self, actor, arrivage_id: int, payload: dict) -> Arrivage:
        check_permission(actor.role, Permission.ARRIVAGES_UPDATE)
        patch = validate_payload(model=Arrivage, payload=payload, policy=ARRIVAGE_POLICY, partial=True)
        enforce_rules_arrivage(patch, ARRIVAGE_STATUSES)
        if "supplier_id" in patch:
            self._check_supplier(actor.org_id, patch["supplier_id"])

        def _op():
            arrivage = self.get_arrivage(actor.org_id, arrivage_id, lock=True)
            for key, value in patch.items():
                setattr(arrivage, key, value)
            try:
                if COST_FIELDS & patch.keys():
                    for lot in arrivage.items:
                        price_lot(lot, arrivage)
                    self.aggregator.recalculate(arrivage.id)
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                raise ConflictError("Arrivage reference already exists in this organization")
            return arrivage

        return run_with_retry(self.session, _op)

    def delete_arrivage(self, actor, arrivage_id: int) -> None:
        """
        Delete an arrivage that holds no lots.

        Linked products and expenses are detached, not deleted.
        """
        check_permission(actor.role, Permission.ARRIVAGES_DELETE)
        arrivage = self.get_arrivage(actor.org_id, arrivage_id)
        if arrivage.items:
            raise ConflictError(
                "Cannot delete an arrivage that still has items",
                details={"item_count": len(arrivage.items)},
            )
        for product in arrivage.linked_products:
            product.arrivage_id = None
        for expense in arrivage.expenses:
            expense.arrivage_id = None
        self.session.delete(arrivage)
        self.session.commit()

    # ------------------------------------------------------------------
    # Lots
    # ------------------------------------------------------------------

    def get_lot(self, org_id: int, arrivage_id: int, item_id: int, *, lock: bool = False) -> ShipmentItem:
        query = self.session.query(ShipmentItem).filter_by(id=item_id, arrivage_id=arrivage_id, org_id=org_id)
        if lock:
            query = lock_for_update(query)
        lot = query.first()
        if lot is None:
            raise NotFoundError("Shipment item not found", details={"item_id": item_id})
        return lot

    def _receive(self, product: Product, delta: int, arrivage: Arrivage, actor, note: str) -> None:
        if delta == 0:
            return
        current = product.quantity_received - product.quantity_sold
        if current + delta < 0:
            raise ConflictError(
                "Product stock is lower than the units being removed; adjust stock first",
                details={"product_id": product.id, "current_stock": current, "delta": delta},
            )
        product.quantity_received += delta
        self.ledger.record(
            product,
            type="ARRIVAGE",
            quantity=delta,
            previous_qty=current,
            reference=f"Arrivage {arrivage.reference}",
            notes=note,
            user_id=actor.id,
        )

    def add_item(self, actor, arrivage_id: int, payload: dict) -> ShipmentItem:
        """Add a lot of one product to the arrivage and receive its units."""
        check_permission(actor.role, Permission.ARRIVAGES_UPDATE)
        payload = dict(payload or {})
        payload.pop("arrivage_id", None)
        patch = validate_payload(model=ShipmentItem, payload=payload, policy=LOT_POLICY, partial=False)
        enforce_rules_shipment_item(patch)

        def _op():
            begin_write(self.session)
            arrivage = self.get_arrivage(actor.org_id, arrivage_id, lock=True)
            product = self.ledger.get_product(actor.org_id, patch["product_id"], lock=True)

            lot = ShipmentItem(
                org_id=actor.org_id,
                arrivage_id=arrivage.id,
                product_id=product.id,
                quantity=patch["quantity"],
                quantity_sold=0,
                quantity_remaining=patch["quantity"],
                cost_per_unit_eur=patch.get("cost_per_unit_eur"),
                cost_per_unit_dh=patch.get("cost_per_unit_dh"),
            )
            price_lot(lot, arrivage)
            self.session.add(lot)
            self._receive(product, lot.quantity, arrivage, actor, "Lot received")
            if product.arrivage_id is None:
                product.arrivage_id = arrivage.id

            self.aggregator.recalculate(arrivage.id)
            self.session.commit()
            return lot

        return run_with_retry(self.session, _op)

    def update_item(self, actor, arrivage_id: int, item_id: int, payload: dict) -> ShipmentItem:
        """
        Edit a lot's quantity, unit costs, or move it to another arrivage.

        Raises:
            ValidationError: new quantity below what the lot already sold,
                or a product change on a lot that has sales
        """
        check_permission(actor.role, Permission.ARRIVAGES_UPDATE)
        patch = validate_payload(model=ShipmentItem, payload=payload, policy=LOT_POLICY, partial=True)
        enforce_rules_shipment_item(patch)

        def _op():
            begin_write(self.session)
            lot = self.get_lot(actor.org_id, arrivage_id, item_id, lock=True)
            old_arrivage = lot.arrivage
            target = old_arrivage
            if "arrivage_id" in patch and patch["arrivage_id"] != lot.arrivage_id:
                if patch["arrivage_id"] is None:
                    raise ValidationError("arrivage_id cannot be null")
                target = self.get_arrivage(actor.org_id, patch["arrivage_id"], lock=True)

            if "product_id" in patch and patch["product_id"] != lot.product_id:
                if lot.quantity_sold > 0:
                    raise ValidationError("Cannot change the product of an item that has sales")
                old_product = self.ledger.get_product(actor.org_id, lot.product_id, lock=True)
                new_product = self.ledger.get_product(actor.org_id, patch["product_id"], lock=True)
                self._receive(old_product, -lot.quantity, old_arrivage, actor, "Lot reassigned")
                self._receive(new_product, lot.quantity, target, actor, "Lot reassigned")
                lot.product_id = new_product.id

            if "quantity" in patch and patch["quantity"] != lot.quantity:
                new_quantity = patch["quantity"]
                if new_quantity < lot.quantity_sold:
                    raise ValidationError(
                        f"Quantity cannot be below units already sold ({lot.quantity_sold})",
                        details={"quantity_sold": lot.quantity_sold},
                    )
                product = self.ledger.get_product(actor.org_id, lot.product_id, lock=True)
                self._receive(product, new_quantity - lot.quantity, target, actor, "Lot quantity edited")
                lot.quantity = new_quantity
                lot.quantity_remaining = new_quantity - lot.quantity_sold

            if "cost_per_unit_eur" in patch:
                lot.cost_per_unit_eur = patch["cost_per_unit_eur"]
            if "cost_per_unit_dh" in patch:
                lot.cost_per_unit_dh = patch["cost_per_unit_dh"]
                if "cost_per_unit_eur" not in patch:
                    # A DH-only edit switches the lot to DH pricing
                    lot.cost_per_unit_eur = None
            lot.arrivage_id = target.id
            price_lot(lot, target)

            self.aggregator.recalculate_many([old_arrivage.id, target.id])
            self.session.commit()
            return lot

        return run_with_retry(self.session, _op)

    def delete_item(self, actor, arrivage_id: int, item_id: int) -> None:
        check_permission(actor.role, Permission.ARRIVAGES_UPDATE)

        def _op():
            begin_write(self.session)
            lot = self.get_lot(actor.org_id, arrivage_id, item_id, lock=True)
            if lot.quantity_sold > 0:
                raise ConflictError(
                    "Cannot delete an item that has sales",
                    details={"quantity_sold": lot.quantity_sold},
                )
            arrivage = lot.arrivage
            product = self.ledger.get_product(actor.org_id, lot.product_id, lock=True)
            self._receive(product, -lot.quantity, arrivage, actor, "Lot removed")
            self.session.delete(lot)

            self.aggregator.recalculate(arrivage.id)
            self.session.commit()

        run_with_retry(self.session, _op)

    def recalculate(self, actor, arrivage_id: int) -> Arrivage:
        check_permission(actor.role, Permission.ARRIVAGES_UPDATE)

        def _op():
            self.aggregator.recalculate(arrivage_id, org_id=actor.org_id)
            self.session.commit()
            return self.get_arrivage(actor.org_id, arrivage_id)

        return run_with_retry(self.session, _op)

