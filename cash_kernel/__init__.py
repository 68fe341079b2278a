"""
Cash Kernel - cash-register session ledger.

An append-only, tenant-scoped ledger of cash movements with:
- A guarded open / supply / withdraw / close state machine
- Atomic append-and-project commands under a tenant lock
- Balances that are always a fold over durable history
- Immutable ledger entries (ORM listeners + database triggers)
"""

__version__ = "0.1.0"
