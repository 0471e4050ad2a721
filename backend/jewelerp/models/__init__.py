from .branches import Branch, AppSetting
from .auth import User, SessionToken
from .documents import DocumentSequence
from .catalog import Category, MetalType, MetalRate, Product
from .customers import Customer
from .invoices import Invoice, InvoiceItem, Payment, OldGoldTransaction
from .loans import GoldLoan, LoanPayment
from .karigars import Karigar, KarigarOrder
from .purchasing import Vendor, PurchaseOrder
from .sync import SyncQueue, SyncStatus

__all__ = [
    'Branch', 'AppSetting',
    'User', 'SessionToken',
    'DocumentSequence',
    'Category', 'MetalType', 'MetalRate', 'Product',
    'Customer',
    'Invoice', 'InvoiceItem', 'Payment', 'OldGoldTransaction',
    'GoldLoan', 'LoanPayment',
    'Karigar', 'KarigarOrder',
    'Vendor', 'PurchaseOrder',
    'SyncQueue', 'SyncStatus',
]
