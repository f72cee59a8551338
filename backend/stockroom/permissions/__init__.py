# Overview: Permission system package.
# Re-exports the role/permission enums and the pure gate functions.

from .categories import PermissionCategory
from .roles import Role, ROLE_HIERARCHY
from .definitions import (
    Permission,
    PERMISSION_DEFINITIONS,
    PERMISSION_ROLES,
    PRODUCT_PERMISSIONS,
    ARRIVAGE_PERMISSIONS,
    SALES_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    EXPENSE_PERMISSIONS,
    REPORTING_PERMISSIONS,
    SETTINGS_PERMISSIONS,
    USER_PERMISSIONS,
)
from .helpers import (
    has_permission,
    check_permission,
    is_super_admin,
    is_admin,
    can_manage_roles,
    can_access_admin_pages,
    get_role_permissions,
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
)

__all__ = [
    "PermissionCategory",
    "Role",
    "ROLE_HIERARCHY",
    "Permission",
    "PERMISSION_DEFINITIONS",
    "PERMISSION_ROLES",
    "PRODUCT_PERMISSIONS",
    "ARRIVAGE_PERMISSIONS",
    "SALES_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "EXPENSE_PERMISSIONS",
    "REPORTING_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "USER_PERMISSIONS",
    "has_permission",
    "check_permission",
    "is_super_admin",
    "is_admin",
    "can_manage_roles",
    "can_access_admin_pages",
    "get_role_permissions",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
]
