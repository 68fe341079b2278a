"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

A cash ledger is only trustworthy if history cannot be rewritten.  A wrong
supply is corrected by a withdrawal, never by editing the supply.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL / SQLite triggers)
    - Catches raw SQL, bulk statements, direct database access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable        | Why
------------------|-----------------------|-----------------------------------
LedgerEntryModel  | ALWAYS (from insert)  | The ledger is the source of truth

CashSessionModel is a derived cache and RegisterLockModel a counter; both
are rewritten by the kernel on every command and are NOT protected here.

===============================================================================
USAGE
===============================================================================

    from cash_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

Tests that must bypass Layer 1 to prove Layer 2 call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event

from cash_kernel.exceptions import ImmutabilityViolationError
from cash_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerEntry",
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerEntry",
        entity_id=str(target.id),
        reason=f"Ledger entries are append-only ({operation} refused)",
    )


def _check_ledger_entry_update(mapper, connection, target):
    """Prevent any UPDATE of a ledger entry."""
    _block(target, "UPDATE")


def _check_ledger_entry_delete(mapper, connection, target):
    """Prevent any DELETE of a ledger entry."""
    _block(target, "DELETE")


def register_immutability_listeners() -> None:
    """
    Register the append-only listeners on LedgerEntryModel.

    Idempotent: registering twice does not install duplicate listeners.
    """
    from cash_kernel.models.ledger_entry import LedgerEntryModel

    for event_name, listener in (
        ("before_update", _check_ledger_entry_update),
        ("before_delete", _check_ledger_entry_delete),
    ):
        if not event.contains(LedgerEntryModel, event_name, listener):
            event.listen(LedgerEntryModel, event_name, listener)


def unregister_immutability_listeners() -> None:
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that intentionally bypass Layer 1.
    """
    from cash_kernel.models.ledger_entry import LedgerEntryModel

    for event_name, listener in (
        ("before_update", _check_ledger_entry_update),
        ("before_delete", _check_ledger_entry_delete),
    ):
        if event.contains(LedgerEntryModel, event_name, listener):
            event.remove(LedgerEntryModel, event_name, listener)
