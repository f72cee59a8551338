# Overview: Records sales by drawing units from a product's lots.

"""
Sale Allocation Invariants (authoritative)

Availability:
- A product's sellable stock is the sum of quantity_remaining over its lots,
  capped by quantity_received - quantity_sold (a downward adjustment can
  leave the lots holding more than the counters allow). A request above it
  raises InsufficientStockError before any write.
- The product row and its lots are locked before availability is read; the
  check and the decrement happen in the same transaction.

Allocation:
- Lots are visited in the order given by the allocator's ordering policy
  (oldest_lot_first by default). Each lot gives min(still needed, remaining).
- Every unit taken is recorded in a SaleAllocation row with the lot's EUR
  unit cost at sale time.
- Product.quantity_sold moves by the same amount and exactly one SALE
  movement is appended per product.

Reversal:
- Deleting a sale (or editing its quantity) replays its SaleAllocation rows:
  each lot gets back exactly what it gave, quantity_sold on the product drops
  by the same amount, and one RETURN movement is appended per product.

Totals:
- total_amount is computed here, never accepted from the client.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal

from ..errors import ConsistencyError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, Sale, SaleAllocation, SaleItem, ShipmentItem
from ..money import ZERO, round2, to_decimal
from ..permissions import Permission, check_permission
from ..time_utils import utcnow
from ..validation import parse_amount, parse_datetime, parse_int
from .concurrency import begin_write, lock_for_update, run_with_retry
from .cost_aggregator import unit_cost_eur
from .stock_ledger import StockLedger

logger = logging.getLogger(__name__)

BUNDLE_TOTAL_TOLERANCE = Decimal("0.01")
MAX_NOTES_LENGTH = 500


def oldest_lot_first(query):
    """FIFO: consume the earliest received lot first."""
    return query.order_by(ShipmentItem.created_at.asc(), ShipmentItem.id.asc())


def newest_lot_first(query):
    return query.order_by(ShipmentItem.created_at.desc(), ShipmentItem.id.desc())


def _clean_notes(notes) -> str | None:
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    notes = notes.strip()
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes must be less than {MAX_NOTES_LENGTH} characters")
    return notes or None


def _positive_quantity(value, field: str = "quantity") -> int:
    quantity = parse_int(value, field)
    if quantity <= 0:
        raise ValidationError(f"{field} must be > 0")
    return quantity


def _sellable(product: Product, lots) -> int:
    # Downward adjustments lower the counters without touching the lots
    in_lots = sum(lot.quantity_remaining for lot in lots)
    return max(min(in_lots, product.quantity_received - product.quantity_sold), 0)


class SaleAllocator:
    """Creates, edits and deletes sales against lot-level stock."""

    def __init__(self, session, *, ordering=oldest_lot_first):
        self.session = session
        self.ordering = ordering
        self.ledger = StockLedger(session)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_sale(self, org_id: int, sale_id: int) -> Sale:
        sale = self.session.query(Sale).filter_by(id=sale_id, org_id=org_id).first()
        if sale is None:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})
        return sale

    def _lock_lots(self, product: Product) -> list[ShipmentItem]:
        query = self.session.query(ShipmentItem).filter(
            ShipmentItem.product_id == product.id,
            ShipmentItem.org_id == product.org_id,
            ShipmentItem.quantity_remaining > 0,
        )
        return lock_for_update(self.ordering(query)).all()

    def available(self, org_id: int, product_id: int) -> int:
        """Units still sellable: what the lots hold, capped by the product's stock."""
        product = self.ledger.get_product(org_id, product_id)
        return _sellable(product, product.lots)

    # ------------------------------------------------------------------
    # Allocation core
    # ------------------------------------------------------------------

    def _sellable_product(self, org_id: int, product_id: int) -> Product:
        product = self.ledger.get_product(org_id, product_id, lock=True)
        if not product.is_active:
            raise ValidationError("Product is inactive", details={"product_id": product.id})
        return product

    def _check_price(self, product: Product, price: Decimal, notes: str | None) -> None:
        # A sale under cost needs a written explanation
        purchase = to_decimal(product.purchase_price_mad)
        if purchase > 0 and price < purchase and not notes:
            raise ValidationError(
                f"Selling {product.name} below purchase price requires notes",
                details={"product_id": product.id, "purchase_price_mad": float(purchase)},
            )

    def _check_available(self, product: Product, requested: int) -> list[ShipmentItem]:
        lots = self._lock_lots(product)
        available = _sellable(product, lots)
        if available < requested:
            raise InsufficientStockError(available, requested, product_id=product.id, product_name=product.name)
        return lots

    def _take_from_lots(self, sale: Sale, product: Product, lots: list[ShipmentItem], quantity: int) -> list[SaleAllocation]:
        remaining = quantity
        allocations = []
        for lot in lots:
            if remaining <= 0:
                break
            take = min(remaining, lot.quantity_remaining)
            if take <= 0:
                continue
            lot.quantity_sold += take
            lot.quantity_remaining -= take
            remaining -= take

            allocation = SaleAllocation(
                product_id=product.id,
                shipment_item_id=lot.id,
                quantity=take,
                unit_cost_eur=round2(unit_cost_eur(lot, product, lot.arrivage.exchange_rate)),
            )
            sale.allocations.append(allocation)
            allocations.append(allocation)

        if remaining > 0:
            logger.error(
                "lot allocation ran short product_id=%s requested=%s missing=%s",
                product.id, quantity, remaining,
            )
            raise ConsistencyError(
                "Lots ran out before the sale was fully allocated",
                details={"product_id": product.id, "requested": quantity, "missing": remaining},
            )
        return allocations

    def _record_sale_movement(self, product: Product, quantity: int, reference: str, notes, actor) -> None:
        current = product.quantity_received - product.quantity_sold
        if current < quantity:
            logger.error(
                "product counters cannot absorb sale product_id=%s stock=%s quantity=%s",
                product.id, current, quantity,
            )
            raise ConsistencyError(
                "Product stock counters disagree with its lots",
                details={"product_id": product.id, "current_stock": current, "quantity": quantity},
            )
        product.quantity_sold += quantity
        self.ledger.record(
            product,
            type="SALE",
            quantity=-quantity,
            previous_qty=current,
            reference=reference,
            notes=notes,
            user_id=actor.id,
        )

    def _allocate(self, sale: Sale, lines: "OrderedDict[int, int]", actor, reference: str, notes) -> None:
        """
        Check every product first, then draw from lots.

        `lines` maps product id -> quantity; products are locked in id order.
        """
        checked = []
        for product_id in sorted(lines):
            product = self._sellable_product(actor.org_id, product_id)
            checked.append((product, self._check_available(product, lines[product_id])))

        for product, lots in checked:
            quantity = lines[product.id]
            self._take_from_lots(sale, product, lots, quantity)
            self._record_sale_movement(product, quantity, reference, notes, actor)

    def _reverse(self, sale: Sale, actor, reference: str) -> None:
        """Give every allocated unit back to its lot and append RETURN movements."""
        returned: "OrderedDict[int, int]" = OrderedDict()
        for allocation in list(sale.allocations):
            lot = lock_for_update(
                self.session.query(ShipmentItem).filter_by(id=allocation.shipment_item_id)
            ).first()
            if lot is None or lot.quantity_sold < allocation.quantity:
                raise ConsistencyError(
                    "Lot cannot take back allocated units",
                    details={"sale_id": sale.id, "shipment_item_id": allocation.shipment_item_id},
                )
            lot.quantity_sold -= allocation.quantity
            lot.quantity_remaining += allocation.quantity
            returned[allocation.product_id] = returned.get(allocation.product_id, 0) + allocation.quantity

        for product_id in sorted(returned):
            quantity = returned[product_id]
            product = self.ledger.get_product(sale.org_id, product_id, lock=True)
            if product.quantity_sold < quantity:
                logger.error(
                    "product sold counter below returned quantity product_id=%s sold=%s returned=%s",
                    product.id, product.quantity_sold, quantity,
                )
                raise ConsistencyError(
                    "Product sold counter is below the returned quantity",
                    details={"product_id": product.id},
                )
            current = product.quantity_received - product.quantity_sold
            product.quantity_sold -= quantity
            self.ledger.record(
                product,
                type="RETURN",
                quantity=quantity,
                previous_qty=max(current, 0),
                reference=reference,
                user_id=actor.id,
            )

        sale.allocations.clear()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_sale(
        self,
        actor,
        *,
        product_id: int,
        quantity,
        price_per_unit,
        sale_date=None,
        is_promo: bool = False,
        notes: str | None = None,
        pricing_mode: str | None = None,
    ) -> Sale:
        """
        Sell `quantity` units of one product.

        Raises InsufficientStockError when the lots hold fewer units than
        requested; nothing is written in that case.
        """
        check_permission(actor.role, Permission.SALES_CREATE)
        product_id = parse_int(product_id, "product_id")
        quantity = _positive_quantity(quantity)
        price = parse_amount(price_per_unit, "price_per_unit")
        sale_date = parse_datetime(sale_date, "sale_date") or utcnow()
        notes = _clean_notes(notes)
        is_promo = bool(is_promo)
        mode = pricing_mode or ("PROMO" if is_promo else "REGULAR")
        if mode not in ("REGULAR", "PROMO"):
            raise ValidationError("pricing_mode must be REGULAR or PROMO for a single-product sale")

        def _op():
            begin_write(self.session)
            product = self._sellable_product(actor.org_id, product_id)
            self._check_price(product, price, notes)

            sale = Sale(
                org_id=actor.org_id,
                product_id=product.id,
                quantity=quantity,
                price_per_unit=price,
                total_amount=round2(price * quantity),
                pricing_mode=mode,
                is_promo=is_promo,
                sale_date=sale_date,
                notes=notes,
                created_by_user_id=actor.id,
            )
            self.session.add(sale)
            self.session.flush()

            self._allocate(sale, OrderedDict([(product.id, quantity)]), actor, f"Sale {sale.id}", notes)
            self.session.commit()
            logger.info("sale created sale_id=%s product_id=%s quantity=%s", sale.id, product.id, quantity)
            return sale

        return run_with_retry(self.session, _op)

    def create_bundle_sale(
        self,
        actor,
        *,
        items: list[dict],
        sale_date=None,
        notes: str | None = None,
        bundle_price_total=None,
    ) -> Sale:
        """
        Sell several products as one bundle.

        `items` is a list of {"product_id", "quantity", "price_per_unit"}.
        Lines for the same product are merged (quantities summed, last price
        wins); at least two distinct products must remain.
        """
        check_permission(actor.role, Permission.SALES_CREATE)
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list")

        quantities: "OrderedDict[int, int]" = OrderedDict()
        prices: dict[int, Decimal] = {}
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("Each bundle item must be an object")
            pid = parse_int(item.get("product_id"), "product_id")
            quantities[pid] = quantities.get(pid, 0) + _positive_quantity(item.get("quantity"))
            prices[pid] = parse_amount(item.get("price_per_unit"), "price_per_unit")

        if len(quantities) < 2:
            raise ValidationError("A bundle needs at least two different products")

        total = round2(sum((prices[pid] * qty for pid, qty in quantities.items()), ZERO))
        if bundle_price_total is not None:
            claimed = parse_amount(bundle_price_total, "bundle_price_total")
            if abs(claimed - total) > BUNDLE_TOTAL_TOLERANCE:
                raise ValidationError(
                    "bundle_price_total does not match the sum of the items",
                    details={"expected": float(total), "received": float(claimed)},
                )
        sale_date = parse_datetime(sale_date, "sale_date") or utcnow()
        notes = _clean_notes(notes)

        def _op():
            begin_write(self.session)
            for pid in sorted(quantities):
                self._check_price(self._sellable_product(actor.org_id, pid), prices[pid], notes)

            sale = Sale(
                org_id=actor.org_id,
                total_amount=total,
                pricing_mode="BUNDLE",
                bundle_price_total=total,
                is_promo=False,
                sale_date=sale_date,
                notes=notes,
                created_by_user_id=actor.id,
            )
            for pid, qty in quantities.items():
                sale.items.append(SaleItem(product_id=pid, quantity=qty, price_per_unit=prices[pid]))
            self.session.add(sale)
            self.session.flush()

            self._allocate(sale, quantities, actor, f"Sale {sale.id} (bundle)", notes)
            self.session.commit()
            logger.info("bundle sale created sale_id=%s products=%s", sale.id, list(quantities))
            return sale

        return run_with_retry(self.session, _op)

    def delete_sale(self, actor, sale_id: int) -> dict:
        """Remove a sale and give its units back to the lots they came from."""
        check_permission(actor.role, Permission.SALES_DELETE)

        def _op():
            begin_write(self.session)
            sale = self.get_sale(actor.org_id, sale_id)
            label = f"Sale {sale.id}" + (" (bundle)" if sale.is_bundle else "")
            self._reverse(sale, actor, f"{label} deleted")
            self.session.delete(sale)
            self.session.commit()
            logger.info("sale deleted sale_id=%s by user_id=%s", sale_id, actor.id)
            return {"deleted": True, "sale_id": sale_id}

        return run_with_retry(self.session, _op)

    def update_sale(
        self,
        actor,
        sale_id: int,
        *,
        quantity=None,
        price_per_unit=None,
        is_promo=None,
        sale_date=None,
        notes=None,
    ) -> Sale:
        """
        Edit a single-product sale.

        A quantity change is a full reversal of the old allocation followed by
        a fresh one, so the lots end up exactly as if the sale had been made
        with the new quantity.
        """
        check_permission(actor.role, Permission.SALES_UPDATE)
        new_quantity = _positive_quantity(quantity) if quantity is not None else None
        new_price = parse_amount(price_per_unit, "price_per_unit") if price_per_unit is not None else None
        new_date = parse_datetime(sale_date, "sale_date")
        new_notes = _clean_notes(notes) if notes is not None else None

        def _op():
            begin_write(self.session)
            sale = self.get_sale(actor.org_id, sale_id)
            if sale.is_bundle:
                raise ValidationError("Bundle sales cannot be edited; delete and re-create them")

            product = self.ledger.get_product(actor.org_id, sale.product_id, lock=True)
            price = new_price if new_price is not None else to_decimal(sale.price_per_unit)
            qty = new_quantity if new_quantity is not None else sale.quantity
            effective_notes = new_notes if notes is not None else sale.notes
            if new_price is not None:
                self._check_price(product, price, effective_notes)

            if qty != sale.quantity:
                self._reverse(sale, actor, f"Sale {sale.id} edited")
                self.session.flush()
                self._allocate(sale, OrderedDict([(product.id, qty)]), actor, f"Sale {sale.id}", effective_notes)

            sale.quantity = qty
            sale.price_per_unit = price
            sale.total_amount = round2(price * qty)
            if is_promo is not None:
                sale.is_promo = bool(is_promo)
                sale.pricing_mode = "PROMO" if sale.is_promo else "REGULAR"
            if new_date is not None:
                sale.sale_date = new_date
            if notes is not None:
                sale.notes = new_notes

            self.session.commit()
            return sale

        return run_with_retry(self.session, _op)
