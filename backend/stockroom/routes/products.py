# Overview: Flask API routes for products and their stock; parses input and returns JSON responses.

"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).

SECURITY: All routes require authentication.
- Catalog reads require PRODUCTS_READ, stock views INVENTORY_READ
- Manual stock corrections require STOCK_ADJUST; resets STOCK_RESET
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.products_service import ProductService, product_view, STOCK_FILTERS
from ..services.settings_service import SettingsService
from ..services.stock_ledger import StockLedger
from ..validation import ValidationError, json_object

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission(Permission.PRODUCTS_READ)
def list_products():
    """
    List active products with margins.

    Query params:
    - search: matches name or SKU
    - category_id, brand_id, arrivage_id: int filters
    - stock: low | ok | out
    - include_inactive: "true" to include soft-deleted products
    - page / per_page: optional pagination (per_page max 100)
    """
    stock = request.args.get("stock")
    if stock and stock not in STOCK_FILTERS:
        raise ValidationError(f"stock must be one of {', '.join(STOCK_FILTERS)}")

    return ProductService(db.session).list_products(
        g.org_id,
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
        arrivage_id=request.args.get("arrivage_id", type=int),
        stock=stock,
        include_inactive=request.args.get("include_inactive") == "true",
        packaging_cost=SettingsService(db.session).packaging_cost(g.org_id),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
@require_auth
@require_permission(Permission.PRODUCTS_CREATE)
def create_product():
    data = json_object(request.get_json(silent=True))
    product = ProductService(db.session).create_product(g.current_user, data)
    return {"product": product.to_dict()}, 201


@products_bp.get("/available-stock")
@require_auth
@require_permission(Permission.INVENTORY_READ)
def available_stock():
    """Products that can be sold right now, with the units their lots still hold."""
    items = ProductService(db.session).available_stock(g.org_id)
    return {"items": items, "count": len(items)}


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission(Permission.PRODUCTS_READ)
def get_product(product_id: int):
    product = ProductService(db.session).get_product(g.org_id, product_id)
    packaging_cost = SettingsService(db.session).packaging_cost(g.org_id)
    data = product_view(product, packaging_cost)
    data["lots"] = [lot.to_dict() for lot in product.lots]
    return {"product": data}


@products_bp.patch("/<int:product_id>")
@require_auth
@require_permission(Permission.PRODUCTS_UPDATE)
def update_product(product_id: int):
    data = json_object(request.get_json(silent=True))
    product = ProductService(db.session).update_product(g.current_user, product_id, data)
    return {"product": product.to_dict()}


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission(Permission.PRODUCTS_DELETE)
def delete_product(product_id: int):
    """Soft delete (is_active=False); sales and movements are kept."""
    product = ProductService(db.session).delete_product(g.current_user, product_id)
    return {"product": product.to_dict()}


@products_bp.post("/<int:product_id>/adjust-stock")
@require_auth
@require_permission(Permission.STOCK_ADJUST)
def adjust_stock(product_id: int):
    """
    Manual stock correction.

    Body: {"delta": int != 0, "reason": str, "notes": str?}
    """
    data = json_object(request.get_json(silent=True))
    result = StockLedger(db.session).adjust(
        product_id,
        data.get("delta"),
        data.get("reason"),
        data.get("notes"),
        g.current_user,
    )
    return result


@products_bp.post("/<int:product_id>/reset-stock")
@require_auth
@require_permission(Permission.STOCK_RESET)
def reset_stock(product_id: int):
    """
    Overwrite stock counters.

    Body: {"new_stock": int >= 0, "reset_sold": bool (default true), "reason": str, "notes": str?}
    """
    data = json_object(request.get_json(silent=True))
    reset_sold = data.get("reset_sold", True)
    if not isinstance(reset_sold, bool):
        raise ValidationError("reset_sold must be a boolean")
    return StockLedger(db.session).reset(
        product_id,
        data.get("new_stock"),
        data.get("reason"),
        data.get("notes"),
        g.current_user,
        reset_sold=reset_sold,
    )


@products_bp.get("/<int:product_id>/stock-movements")
@require_auth
@require_permission(Permission.INVENTORY_READ)
def stock_movements(product_id: int):
    limit = min(max(request.args.get("limit", default=200, type=int), 1), 500)
    movements = StockLedger(db.session).movements(g.org_id, product_id, limit=limit)
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}
