"""Read-only query selectors."""

from cash_kernel.selectors.ledger_selector import LedgerSelector
from cash_kernel.selectors.session_selector import SessionSelector

__all__ = ["LedgerSelector", "SessionSelector"]
