# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""
Sales API routes with permission enforcement.

A body with "items" records a bundle sale; otherwise it is a single-product
sale. Stock errors (InsufficientStockError) come back as 409 with the
available and requested quantities.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Sale
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..errors import StockroomError
from ..services.sale_allocation import SaleAllocator
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, json_object


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission(Permission.SALES_READ)
def list_sales():
    """
    Query params: product_id, start_date, end_date (ISO-8601), limit (1-500, default 100).
    """
    query = db.session.query(Sale).filter(Sale.org_id == g.org_id)

    product_id = request.args.get("product_id", type=int)
    if product_id is not None:
        query = query.filter(Sale.product_id == product_id)

    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 datetimes")
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date <= end)

    limit = min(max(request.args.get("limit", default=100, type=int), 1), 500)
    sales = query.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.post("")
@require_auth
@require_permission(Permission.SALES_CREATE)
def create_sale_route():
    """
    Record a sale.

    Single: {"product_id", "quantity", "price_per_unit", "sale_date"?, "is_promo"?, "notes"?}
    Bundle: {"items": [{"product_id", "quantity", "price_per_unit"}, ...],
             "bundle_price_total"?, "sale_date"?, "notes"?}
    """
    data = json_object(request.get_json(silent=True))
    allocator = SaleAllocator(db.session)

    try:
        if "items" in data:
            sale = allocator.create_bundle_sale(
                g.current_user,
                items=data.get("items"),
                sale_date=data.get("sale_date"),
                notes=data.get("notes"),
                bundle_price_total=data.get("bundle_price_total"),
            )
        else:
            sale = allocator.create_sale(
                g.current_user,
                product_id=data.get("product_id"),
                quantity=data.get("quantity"),
                price_per_unit=data.get("price_per_unit"),
                sale_date=data.get("sale_date"),
                is_promo=data.get("is_promo", False),
                notes=data.get("notes"),
                pricing_mode=data.get("pricing_mode"),
            )
    except StockroomError:
        raise
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return {"sale": sale.to_dict()}, 201


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(Permission.SALES_READ)
def get_sale(sale_id: int):
    sale = SaleAllocator(db.session).get_sale(g.org_id, sale_id)
    return {"sale": sale.to_dict()}


@sales_bp.patch("/<int:sale_id>")
@require_auth
@require_permission(Permission.SALES_UPDATE)
def update_sale_route(sale_id: int):
    """Edit a single-product sale; a quantity change re-draws from the lots."""
    data = json_object(request.get_json(silent=True))
    try:
        sale = SaleAllocator(db.session).update_sale(
            g.current_user,
            sale_id,
            quantity=data.get("quantity"),
            price_per_unit=data.get("price_per_unit"),
            is_promo=data.get("is_promo"),
            sale_date=data.get("sale_date"),
            notes=data.get("notes"),
        )
    except StockroomError:
        raise
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500

    return {"sale": sale.to_dict()}


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission(Permission.SALES_DELETE)
def delete_sale_route(sale_id: int):
    """Delete a sale and return its units to the lots they came from."""
    try:
        result = SaleAllocator(db.session).delete_sale(g.current_user, sale_id)
    except StockroomError:
        raise
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
    return result
