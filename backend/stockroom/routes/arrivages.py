# Overview: Flask API routes for arrivages and their lots.

"""
Arrivage (inbound shipment) routes.

MULTI-TENANT: scoped to g.org_id. Lot changes go through ArrivageService so
product counters, movements and arrivage totals stay in step.
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..models import ARRIVAGE_STATUSES
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.shipment_service import ArrivageService
from ..validation import ValidationError, json_object

arrivages_bp = Blueprint("arrivages", __name__, url_prefix="/api/arrivages")


@arrivages_bp.get("")
@require_auth
@require_permission(Permission.ARRIVAGES_READ)
def list_arrivages():
    status = request.args.get("status")
    if status and status not in ARRIVAGE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ARRIVAGE_STATUSES)}")
    return ArrivageService(db.session).list_arrivages(
        g.org_id,
        status=status,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@arrivages_bp.post("")
@require_auth
@require_permission(Permission.ARRIVAGES_CREATE)
def create_arrivage():
    data = json_object(request.get_json(silent=True))
    arrivage = ArrivageService(db.session).create_arrivage(g.current_user, data)
    return {"arrivage": arrivage.to_dict()}, 201


@arrivages_bp.get("/<int:arrivage_id>")
@require_auth
@require_permission(Permission.ARRIVAGES_READ)
def get_arrivage(arrivage_id: int):
    return {"arrivage": ArrivageService(db.session).arrivage_detail(g.org_id, arrivage_id)}


@arrivages_bp.patch("/<int:arrivage_id>")
@require_auth
@require_permission(Permission.ARRIVAGES_UPDATE)
def update_arrivage(arrivage_id: int):
    data = json_object(request.get_json(silent=True))
    arrivage = ArrivageService(db.session).update_arrivage(g.current_user, arrivage_id, data)
    return {"arrivage": arrivage.to_dict()}


@arrivages_bp.delete("/<int:arrivage_id>")
@require_auth
@require_permission(Permission.ARRIVAGES_DELETE)
def delete_arrivage(arrivage_id: int):
    ArrivageService(db.session).delete_arrivage(g.current_user, arrivage_id)
    return {"deleted": True, "arrivage_id": arrivage_id}


@arrivages_bp.post("/<int:arrivage_id>/items")
@require_auth
@require_permission(Permission.ARRIVAGES_UPDATE)
def add_item(arrivage_id: int):
    """
    Receive a lot.

    Body: {"product_id": int, "quantity": int > 0, "cost_per_unit_eur": number?, "cost_per_unit_dh": number?}
    """
    data = json_object(request.get_json(silent=True))
    lot = ArrivageService(db.session).add_item(g.current_user, arrivage_id, data)
    return {"item": lot.to_dict()}, 201


@arrivages_bp.patch("/<int:arrivage_id>/items/<int:item_id>")
@require_auth
@require_permission(Permission.ARRIVAGES_UPDATE)
def update_item(arrivage_id: int, item_id: int):
    data = json_object(request.get_json(silent=True))
    lot = ArrivageService(db.session).update_item(g.current_user, arrivage_id, item_id, data)
    return {"item": lot.to_dict()}


@arrivages_bp.delete("/<int:arrivage_id>/items/<int:item_id>")
@require_auth
@require_permission(Permission.ARRIVAGES_UPDATE)
def delete_item(arrivage_id: int, item_id: int):
    ArrivageService(db.session).delete_item(g.current_user, arrivage_id, item_id)
    return {"deleted": True, "item_id": item_id}


@arrivages_bp.post("/<int:arrivage_id>/recalculate")
@require_auth
@require_permission(Permission.ARRIVAGES_UPDATE)
def recalculate(arrivage_id: int):
    arrivage = ArrivageService(db.session).recalculate(g.current_user, arrivage_id)
    return {"arrivage": arrivage.to_dict()}
