"""ORM models. Importing this package registers every table on Base.metadata."""

from cash_kernel.models.cash_session import CashSessionModel
from cash_kernel.models.ledger_entry import LedgerEntryModel
from cash_kernel.models.register_lock import RegisterLockModel

__all__ = [
    "CashSessionModel",
    "LedgerEntryModel",
    "RegisterLockModel",
]
