from .catalog import Product, Warehouse, Customer, Supplier
from .inventory import StockRow, AuditEntry
from .orders import SalesOrder, SalesOrderLine, PurchaseOrder, PurchaseOrderLine

__all__ = [
    'Product', 'Warehouse', 'Customer', 'Supplier',
    'StockRow', 'AuditEntry',
    'SalesOrder', 'SalesOrderLine', 'PurchaseOrder', 'PurchaseOrderLine',
]
