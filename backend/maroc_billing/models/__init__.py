from .tenancy import Company, StockLocation
from .customers import Client, ClientCategory
from .inventory import ProductCategory, Product, StockMovement, Inventory, InventoryItem
from .taxes import Tax, TaxRule
from .documents import (
    DocumentSequence, LineItem, Invoice, Quote, ProformaInvoice,
    CreditNote, CreditNoteApplication, EmailHistoryEntry,
)
from .payments import Payment

__all__ = [
    'Company', 'StockLocation',
    'Client', 'ClientCategory',
    'ProductCategory', 'Product', 'StockMovement', 'Inventory', 'InventoryItem',
    'Tax', 'TaxRule',
    'DocumentSequence', 'LineItem', 'Invoice', 'Quote', 'ProformaInvoice',
    'CreditNote', 'CreditNoteApplication', 'EmailHistoryEntry',
    'Payment',
]
