from .tenancy import Branch, Product, generate_id
from .inventory import StockLevel, StockMovement, LowStockAlert, ExpiryAlert
from .documents import (
    BranchTransfer,
    BranchTransferItem,
    StockAudit,
    StockAuditItem,
    Supplier,
    PurchaseOrder,
    PurchaseOrderItem,
    DocumentSequence,
)
from .auth import StaffMember, StaffActivityLog
from .billing import Subscription
from .sales import Sale, SaleLine, Debtor
from .security import SecurityEvent

__all__ = [
    'Branch', 'Product', 'generate_id',
    'StockLevel', 'StockMovement', 'LowStockAlert', 'ExpiryAlert',
    'BranchTransfer', 'BranchTransferItem', 'StockAudit', 'StockAuditItem',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem', 'DocumentSequence',
    'StaffMember', 'StaffActivityLog',
    'Subscription',
    'Sale', 'SaleLine', 'Debtor',
    'SecurityEvent',
]
