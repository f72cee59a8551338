# Overview: Pure permission checks and definition lookups.

from __future__ import annotations

from ..errors import PermissionDeniedError
from .definitions import PERMISSION_DEFINITIONS, PERMISSION_ROLES, Permission
from .roles import Role


def _coerce_role(role) -> Role | None:
    try:
        return Role.parse(role)
    except ValueError:
        return None


def _coerce_permission(permission) -> Permission | None:
    if isinstance(permission, Permission):
        return permission
    try:
        return Permission(permission)
    except ValueError:
        return None


def has_permission(role, permission) -> bool:
    """True when `role` is in the allowed set for `permission`. Unknown values fail closed."""
    role = _coerce_role(role)
    permission = _coerce_permission(permission)
    if role is None or permission is None:
        return False
    return role in PERMISSION_ROLES[permission]


def is_super_admin(role) -> bool:
    return _coerce_role(role) is Role.SUPER_ADMIN


def is_admin(role) -> bool:
    return _coerce_role(role) in (Role.ADMIN, Role.SUPER_ADMIN)


def can_manage_roles(role) -> bool:
    return has_permission(role, Permission.USERS_MANAGE_ROLES)


def can_access_admin_pages(role) -> bool:
    return is_admin(role)


def get_role_permissions(role) -> list[Permission]:
    """Permissions granted to a role, in definition order."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS if has_permission(role, perm[0])]


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0].value for perm in PERMISSION_DEFINITIONS]


def get_permissions_by_category(category):
    """Get all permissions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    permission = _coerce_permission(code)
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] is permission:
            return {
                "code": perm[0].value,
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
                "roles": sorted(role.value for role in PERMISSION_ROLES[perm[0]]),
            }
    return None


def check_permission(role, permission) -> None:
    """Raise PermissionDeniedError unless `role` holds `permission`."""
    if not has_permission(role, permission):
        code = permission.value if isinstance(permission, Permission) else str(permission)
        raise PermissionDeniedError(
            f"Requires {code}",
            details={"required_permission": code},
        )
