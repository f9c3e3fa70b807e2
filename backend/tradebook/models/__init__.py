from .inventory import Item
from .parties import Vendor, Customer, Commissioner, Broker
from .invoices import Invoice, InvoiceLine, Payment, DocumentSequence
from .ledger import BalanceEntry, ActivityLog
from .auth import User, UserPermission, SessionToken

__all__ = [
    'Item',
    'Vendor', 'Customer', 'Commissioner', 'Broker',
    'Invoice', 'InvoiceLine', 'Payment', 'DocumentSequence',
    'BalanceEntry', 'ActivityLog',
    'User', 'UserPermission', 'SessionToken',
]
