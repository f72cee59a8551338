# Overview: Flask API routes for organization settings.

from flask import Blueprint, request, g

from ..extensions import db
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.settings_service import SettingsService
from ..validation import ValidationError, json_object

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_permission(Permission.SETTINGS_READ)
def list_settings():
    """All known settings, defaults filled in."""
    return {"settings": SettingsService(db.session).get_all(g.org_id)}


@settings_bp.get("/<key>")
@require_auth
@require_permission(Permission.SETTINGS_READ)
def get_setting(key: str):
    value = SettingsService(db.session).get_value(g.org_id, key)
    return {"key": key, "value": float(value)}


@settings_bp.put("/<key>")
@require_auth
@require_permission(Permission.SETTINGS_UPDATE)
def put_setting(key: str):
    """Body: {"value": number}"""
    data = json_object(request.get_json(silent=True))
    if "value" not in data:
        raise ValidationError("value is required")
    value = SettingsService(db.session).set_value(g.current_user, key, data["value"])
    return {"key": key, "value": float(value)}
