"""Kernel services - the imperative shell that writes the ledger."""

from cash_kernel.services.ledger_store import LedgerStore
from cash_kernel.services.lock_service import TenantLockService
from cash_kernel.services.session_engine import AppliedCommand, SessionEngine

__all__ = [
    "AppliedCommand",
    "LedgerStore",
    "SessionEngine",
    "TenantLockService",
]
