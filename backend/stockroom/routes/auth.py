# Overview: Flask API routes for the caller's identity and token revocation.

"""
Login itself happens at the external identity provider; these routes only
expose who the bearer token resolves to and let the holder revoke it.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..permissions import get_role_permissions, can_access_admin_pages
from ..services import session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return {
        "user": user.to_dict(),
        "org_id": g.org_id,
        "permissions": [p.value for p in get_role_permissions(user.role)],
        "can_access_admin_pages": can_access_admin_pages(user.role),
    }


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]

        if not session_service.revoke_session(token):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500
