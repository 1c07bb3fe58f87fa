from .catalog import Product, PackageUnit, StorageLocation, ProductStorageLocation
from .inventory import InventoryRecord, InventoryTransaction
from .orders import PurchaseOrder, PurchaseOrderItem, SalesOrder, SalesOrderItem
from .documents import ReturnOrder, ReturnOrderItem, StockTaking, StockTakingItem

__all__ = [
    'Product', 'PackageUnit', 'StorageLocation', 'ProductStorageLocation',
    'InventoryRecord', 'InventoryTransaction',
    'PurchaseOrder', 'PurchaseOrderItem', 'SalesOrder', 'SalesOrderItem',
    'ReturnOrder', 'ReturnOrderItem', 'StockTaking', 'StockTakingItem',
]
