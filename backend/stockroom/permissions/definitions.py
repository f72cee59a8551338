# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)
# and mapped to the roles allowed to exercise it.

from __future__ import annotations

import enum

from .categories import PermissionCategory
from .roles import Role


class Permission(str, enum.Enum):
    PRODUCTS_READ = "PRODUCTS_READ"
    PRODUCTS_CREATE = "PRODUCTS_CREATE"
    PRODUCTS_UPDATE = "PRODUCTS_UPDATE"
    PRODUCTS_DELETE = "PRODUCTS_DELETE"

    ARRIVAGES_READ = "ARRIVAGES_READ"
    ARRIVAGES_CREATE = "ARRIVAGES_CREATE"
    ARRIVAGES_UPDATE = "ARRIVAGES_UPDATE"
    ARRIVAGES_DELETE = "ARRIVAGES_DELETE"

    SALES_READ = "SALES_READ"
    SALES_CREATE = "SALES_CREATE"
    SALES_UPDATE = "SALES_UPDATE"
    SALES_DELETE = "SALES_DELETE"

    INVENTORY_READ = "INVENTORY_READ"
    STOCK_ADJUST = "STOCK_ADJUST"
    STOCK_RESET = "STOCK_RESET"

    EXPENSES_READ = "EXPENSES_READ"
    EXPENSES_CREATE = "EXPENSES_CREATE"
    EXPENSES_UPDATE = "EXPENSES_UPDATE"
    EXPENSES_DELETE = "EXPENSES_DELETE"

    DASHBOARD_READ = "DASHBOARD_READ"
    REPORTS_READ = "REPORTS_READ"

    SETTINGS_READ = "SETTINGS_READ"
    SETTINGS_UPDATE = "SETTINGS_UPDATE"

    USERS_READ = "USERS_READ"
    USERS_CREATE = "USERS_CREATE"
    USERS_UPDATE = "USERS_UPDATE"
    USERS_DELETE = "USERS_DELETE"
    USERS_MANAGE_ROLES = "USERS_MANAGE_ROLES"


# -- PRODUCTS --

PRODUCT_PERMISSIONS = [
    (Permission.PRODUCTS_READ, "View Products", "View the product catalog", PermissionCategory.PRODUCTS),
    (Permission.PRODUCTS_CREATE, "Create Products", "Add products to the catalog", PermissionCategory.PRODUCTS),
    (Permission.PRODUCTS_UPDATE, "Edit Products", "Edit prices and product details", PermissionCategory.PRODUCTS),
    (Permission.PRODUCTS_DELETE, "Deactivate Products", "Soft-delete products", PermissionCategory.PRODUCTS),
]


# -- ARRIVAGES --

ARRIVAGE_PERMISSIONS = [
    (Permission.ARRIVAGES_READ, "View Arrivages", "View shipments and their lots", PermissionCategory.ARRIVAGES),
    (Permission.ARRIVAGES_CREATE, "Create Arrivages", "Register inbound shipments", PermissionCategory.ARRIVAGES),
    (
        Permission.ARRIVAGES_UPDATE,
        "Edit Arrivages",
        "Edit shipment charges, exchange rate and lots",
        PermissionCategory.ARRIVAGES,
    ),
    (Permission.ARRIVAGES_DELETE, "Delete Arrivages", "Delete shipments with no sold lots", PermissionCategory.ARRIVAGES),
]


# -- SALES --

SALES_PERMISSIONS = [
    (Permission.SALES_READ, "View Sales", "View recorded sales", PermissionCategory.SALES),
    (Permission.SALES_CREATE, "Create Sale", "Record single and bundle sales", PermissionCategory.SALES),
    (Permission.SALES_UPDATE, "Edit Sale", "Change quantity or price of a recorded sale", PermissionCategory.SALES),
    (Permission.SALES_DELETE, "Delete Sale", "Delete a sale and restore its stock", PermissionCategory.SALES),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (Permission.INVENTORY_READ, "View Inventory", "View stock levels and movements", PermissionCategory.INVENTORY),
    (Permission.STOCK_ADJUST, "Adjust Stock", "Apply manual stock corrections", PermissionCategory.INVENTORY),
    (Permission.STOCK_RESET, "Reset Stock", "Overwrite stock counters (super admin)", PermissionCategory.INVENTORY),
]


# -- EXPENSES --

EXPENSE_PERMISSIONS = [
    (Permission.EXPENSES_READ, "View Expenses", "View expenses", PermissionCategory.EXPENSES),
    (Permission.EXPENSES_CREATE, "Create Expenses", "Record expenses", PermissionCategory.EXPENSES),
    (Permission.EXPENSES_UPDATE, "Edit Expenses", "Edit expenses", PermissionCategory.EXPENSES),
    (Permission.EXPENSES_DELETE, "Delete Expenses", "Delete expenses", PermissionCategory.EXPENSES),
]


# -- REPORTING --

REPORTING_PERMISSIONS = [
    (Permission.DASHBOARD_READ, "View Dashboard", "View dashboard KPIs", PermissionCategory.REPORTING),
    (Permission.REPORTS_READ, "View Reports", "View profit reports", PermissionCategory.REPORTING),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    (Permission.SETTINGS_READ, "View Settings", "View organization settings", PermissionCategory.SETTINGS),
    (Permission.SETTINGS_UPDATE, "Edit Settings", "Change organization settings", PermissionCategory.SETTINGS),
]


# -- USERS --

USER_PERMISSIONS = [
    (Permission.USERS_READ, "View Users", "View team members", PermissionCategory.USERS),
    (Permission.USERS_CREATE, "Create Users", "Invite team members", PermissionCategory.USERS),
    (Permission.USERS_UPDATE, "Edit Users", "Activate or deactivate team members", PermissionCategory.USERS),
    (Permission.USERS_DELETE, "Delete Users", "Remove team members", PermissionCategory.USERS),
    (Permission.USERS_MANAGE_ROLES, "Manage Roles", "Promote or demote team members", PermissionCategory.USERS),
]


PERMISSION_DEFINITIONS = (
    PRODUCT_PERMISSIONS
    + ARRIVAGE_PERMISSIONS
    + SALES_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + EXPENSE_PERMISSIONS
    + REPORTING_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + USER_PERMISSIONS
)


_EVERYONE = frozenset({Role.STAFF, Role.ADMIN, Role.SUPER_ADMIN})
_ADMINS = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
_SUPER_ONLY = frozenset({Role.SUPER_ADMIN})


PERMISSION_ROLES: dict[Permission, frozenset[Role]] = {
    Permission.PRODUCTS_READ: _EVERYONE,
    Permission.PRODUCTS_CREATE: _ADMINS,
    Permission.PRODUCTS_UPDATE: _ADMINS,
    Permission.PRODUCTS_DELETE: _ADMINS,

    Permission.ARRIVAGES_READ: _EVERYONE,
    Permission.ARRIVAGES_CREATE: _ADMINS,
    Permission.ARRIVAGES_UPDATE: _ADMINS,
    Permission.ARRIVAGES_DELETE: _ADMINS,

    Permission.SALES_READ: _EVERYONE,
    Permission.SALES_CREATE: _EVERYONE,
    Permission.SALES_UPDATE: _ADMINS,
    Permission.SALES_DELETE: _ADMINS,

    Permission.INVENTORY_READ: _EVERYONE,
    Permission.STOCK_ADJUST: _EVERYONE,
    Permission.STOCK_RESET: _SUPER_ONLY,

    Permission.EXPENSES_READ: _ADMINS,
    Permission.EXPENSES_CREATE: _ADMINS,
    Permission.EXPENSES_UPDATE: _ADMINS,
    Permission.EXPENSES_DELETE: _ADMINS,

    Permission.DASHBOARD_READ: _EVERYONE,
    Permission.REPORTS_READ: _EVERYONE,

    Permission.SETTINGS_READ: _ADMINS,
    Permission.SETTINGS_UPDATE: _ADMINS,

    Permission.USERS_READ: _ADMINS,
    Permission.USERS_CREATE: _ADMINS,
    Permission.USERS_UPDATE: _ADMINS,
    Permission.USERS_DELETE: _ADMINS,
    Permission.USERS_MANAGE_ROLES: _SUPER_ONLY,
}


def _check_exhaustive() -> None:
    missing = set(Permission) - set(PERMISSION_ROLES)
    if missing:
        raise RuntimeError(f"permissions without a role mapping: {sorted(p.value for p in missing)}")
    undefined = set(Permission) - {perm[0] for perm in PERMISSION_DEFINITIONS}
    if undefined:
        raise RuntimeError(f"permissions without a definition: {sorted(p.value for p in undefined)}")


_check_exhaustive()
