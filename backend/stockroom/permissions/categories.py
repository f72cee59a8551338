# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    PRODUCTS = "PRODUCTS"
    ARRIVAGES = "ARRIVAGES"
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    EXPENSES = "EXPENSES"
    REPORTING = "REPORTING"
    SETTINGS = "SETTINGS"
    USERS = "USERS"
