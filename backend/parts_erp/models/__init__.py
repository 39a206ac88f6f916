from .tenancy import Company
from .inventory import Product, ProductSupplierInfo, StockMovement
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderLine
from .customers import Customer, Invoice
from .sales import Sale, SaleLine
from .outbox import OutboxEvent

__all__ = [
    'Company',
    'Product', 'ProductSupplierInfo', 'StockMovement',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderLine',
    'Customer', 'Invoice',
    'Sale', 'SaleLine',
    'OutboxEvent',
]
