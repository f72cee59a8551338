# Overview: Flask API routes for team members and their roles.

"""
Team administration routes.

MULTI-TENANT: only members of g.org_id are visible or editable.

SECURITY:
- listing requires USERS_READ, adding USERS_CREATE, editing USERS_UPDATE,
  removing USERS_DELETE
- any role change also requires USERS_MANAGE_ROLES (SUPER_ADMIN only);
  TeamService enforces that since it depends on the body
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.team_service import TeamService
from ..validation import json_object

team_bp = Blueprint("team", __name__, url_prefix="/api/admin/team")


@team_bp.get("")
@require_auth
@require_permission(Permission.USERS_READ)
def list_members():
    """Query params: include_inactive ("false" hides deactivated members)."""
    members = TeamService(db.session).list_members(
        g.current_user,
        include_inactive=request.args.get("include_inactive") != "false",
    )
    return {"members": [m.to_dict() for m in members], "count": len(members)}


@team_bp.post("")
@require_auth
@require_permission(Permission.USERS_CREATE)
def add_member():
    """Body: {"email", "full_name"?, "external_id"?, "role"? (default STAFF)}"""
    data = json_object(request.get_json(silent=True))
    member = TeamService(db.session).add_member(g.current_user, data)
    return {"member": member.to_dict()}, 201


@team_bp.patch("/<int:user_id>")
@require_auth
@require_permission(Permission.USERS_UPDATE)
def update_member(user_id: int):
    """Body: any of {"full_name", "email", "is_active", "role"}"""
    data = json_object(request.get_json(silent=True))
    member = TeamService(db.session).update_member(g.current_user, user_id, data)
    return {"member": member.to_dict()}


@team_bp.delete("/<int:user_id>")
@require_auth
@require_permission(Permission.USERS_DELETE)
def remove_member(user_id: int):
    """Deactivate the member and revoke their tokens."""
    member = TeamService(db.session).remove_member(g.current_user, user_id)
    return {"member": member.to_dict()}
