from .tenancy import Tenant, DocumentSequence
from .customers import Customer
from .inventory import StockItem, Service, ProductMovement
from .campaigns import InventoryCampaign, InventoryCampaignItem
from .sales import Sale, SaleItem, Invoice, InvoiceItem, Payment
from .security import AuditLog

__all__ = [
    'Tenant', 'DocumentSequence',
    'Customer',
    'StockItem', 'Service', 'ProductMovement',
    'InventoryCampaign', 'InventoryCampaignItem',
    'Sale', 'SaleItem', 'Invoice', 'InvoiceItem', 'Payment',
    'AuditLog',
]
