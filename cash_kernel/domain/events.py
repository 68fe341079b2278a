"""
Domain events emitted after register commands commit.

Events are immutable notifications for outer layers (UI toasts, webhooks,
read models).  They are never persisted and never drive state; the ledger
does.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from cash_kernel.domain.values import EntryKind, LedgerEntry, SessionProjection


@dataclass(frozen=True, slots=True)
class DomainEvent:
    tenant_id: str
    occurred_at: datetime

    @property
    def event_type(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, slots=True)
class SessionOpened(DomainEvent):
    session_id: UUID
    entry_id: UUID
    opening_balance: Decimal
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class CashSupplied(DomainEvent):
    session_id: UUID
    entry_id: UUID
    amount: Decimal
    balance: Decimal
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class CashWithdrawn(DomainEvent):
    session_id: UUID
    entry_id: UUID
    amount: Decimal
    balance: Decimal
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class SessionClosed(DomainEvent):
    session_id: UUID
    entry_id: UUID
    final_balance: Decimal
    counted_amount: Decimal | None = None
    discrepancy: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class CommandRejected(DomainEvent):
    command: str
    error_code: str
    error_message: str


def event_for_entry(entry: LedgerEntry, projection: SessionProjection) -> DomainEvent:
    """Build the success event for an appended entry and the resulting state."""
    common = {
        "tenant_id": entry.tenant_id,
        "occurred_at": entry.timestamp,
        "session_id": entry.session_id,
        "entry_id": entry.id,
        "notes": entry.notes,
    }
    if entry.kind is EntryKind.OPEN:
        return SessionOpened(opening_balance=entry.amount, **common)
    if entry.kind is EntryKind.SUPPLY:
        return CashSupplied(amount=entry.amount, balance=projection.balance, **common)
    if entry.kind is EntryKind.WITHDRAW:
        return CashWithdrawn(amount=entry.amount, balance=projection.balance, **common)
    return SessionClosed(
        final_balance=projection.balance,
        counted_amount=projection.counted_amount,
        discrepancy=projection.discrepancy,
        **common,
    )
