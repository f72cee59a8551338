# Overview: Request and permission decorators for API routes.

import logging
from functools import wraps
from flask import request, jsonify, g

from .permissions import Permission, has_permission
from .services import session_service

logger = logging.getLogger(__name__)


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'org_id')


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account or organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.org_id = context.org_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def _deny(user, code: str):
    logger.warning(
        "permission denied user_id=%s role=%s org_id=%s path=%s required=%s",
        user.id, getattr(user.role, "value", user.role), g.org_id, request.path, code,
    )
    return jsonify({
        "error": "Permission denied",
        "required_permission": code,
        "message": f"Requires {code}",
    }), 403


def require_permission(permission: Permission):
    """Require a specific permission for the authenticated user's role."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not has_permission(user.role, permission):
                return _deny(user, permission.value)

            return f(*args, **kwargs)

        return decorated_function
    return decorator

