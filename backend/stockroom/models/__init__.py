from .tenancy import Organization
from .auth import User, SessionToken
from .catalog import Brand, Category, Supplier, Product
from .shipments import Arrivage, ShipmentItem, Expense, ARRIVAGE_STATUSES, EXPENSE_TYPES
from .sales import Sale, SaleItem, SaleAllocation, PRICING_MODES
from .inventory import StockMovement, MOVEMENT_TYPES
from .settings import OrganizationSetting

__all__ = [
    'Organization',
    'User', 'SessionToken',
    'Brand', 'Category', 'Supplier', 'Product',
    'Arrivage', 'ShipmentItem', 'Expense', 'ARRIVAGE_STATUSES', 'EXPENSE_TYPES',
    'Sale', 'SaleItem', 'SaleAllocation', 'PRICING_MODES',
    'StockMovement', 'MOVEMENT_TYPES',
    'OrganizationSetting',
]
