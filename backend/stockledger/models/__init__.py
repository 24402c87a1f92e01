from .tenancy import Company, Branch
from .auth import User
from .inventory import Product, Receipt, ReceiptLine, ReceiptAuditEntry, ImmutableRowError
from .movements import Sale, SaleLine, SaleReturn

__all__ = [
    'Company', 'Branch',
    'User',
    'Product', 'Receipt', 'ReceiptLine', 'ReceiptAuditEntry', 'ImmutableRowError',
    'Sale', 'SaleLine', 'SaleReturn',
]
