from .registers import Register
from .ledger import LedgerEvent, OutboxEntry
from .sales import Sale, SaleTender

__all__ = [
    'Register',
    'LedgerEvent', 'OutboxEntry',
    'Sale', 'SaleTender',
]
