# Overview: Flask API routes for brands, categories and suppliers.

"""
Catalog reference data routes.

/api/brands, /api/categories and /api/suppliers share one set of handlers;
the kind in the URL picks the table and the permissions. Brands and
categories use the PRODUCTS_* permissions, suppliers the ARRIVAGES_* ones,
so the checks happen in CatalogService rather than in a decorator.

MULTI-TENANT: scoped to g.org_id.
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..decorators import require_auth
from ..permissions import check_permission
from ..services.catalog_service import CatalogService
from ..validation import json_object

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

KIND = "<any(brands, categories, suppliers):kind>"


def _service(kind: str) -> CatalogService:
    return CatalogService(db.session, kind)


@catalog_bp.get(f"/{KIND}")
@require_auth
def list_entries(kind: str):
    """Query params: search (matches name)."""
    service = _service(kind)
    check_permission(g.current_user.role, service.kind.read)
    entries = service.list_entries(g.org_id, search=request.args.get("search"))
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@catalog_bp.post(f"/{KIND}")
@require_auth
def create_entry(kind: str):
    data = json_object(request.get_json(silent=True))
    entry = _service(kind).create_entry(g.current_user, data)
    return {"item": entry.to_dict()}, 201


@catalog_bp.get(f"/{KIND}/<int:entry_id>")
@require_auth
def get_entry(kind: str, entry_id: int):
    service = _service(kind)
    check_permission(g.current_user.role, service.kind.read)
    entry = service.get_entry(g.org_id, entry_id)
    data = entry.to_dict()
    data["usage_count"] = service.usage_count(entry)
    return {"item": data}


@catalog_bp.patch(f"/{KIND}/<int:entry_id>")
@require_auth
def update_entry(kind: str, entry_id: int):
    data = json_object(request.get_json(silent=True))
    entry = _service(kind).update_entry(g.current_user, entry_id, data)
    return {"item": entry.to_dict()}


@catalog_bp.delete(f"/{KIND}/<int:entry_id>")
@require_auth
def delete_entry(kind: str, entry_id: int):
    _service(kind).delete_entry(g.current_user, entry_id)
    return {"deleted": True, "id": entry_id}
