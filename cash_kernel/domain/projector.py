"""
Projector -- Deterministic fold of ledger entries into session state.

Responsibility:
    Rebuilds a session's status and balance from its ledger entries, for
    the current moment or after the first N entries, and produces the
    history summary of a session.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Same entries, same projection: entries are sorted by (timestamp, seq)
      before folding, so input order never matters.
    - The fold re-checks the state machine; stored entries that violate it
      are reported, never silently skipped.

Failure modes:
    - LedgerCorruptionError when entries mix tenants or sessions, start
      without an Open, repeat an Open, move cash after a Close, carry an
      amount on a Close or drive the balance negative.
    - ValueError for an empty input without a tenant_id, or a negative n.
"""

from __future__ import annotations

from datetime import timezone, tzinfo
from decimal import Decimal
from typing import Iterable

from cash_kernel.domain.state_machine import BALANCE_SIGN, next_status
from cash_kernel.domain.values import (
    ZERO,
    EntryKind,
    LedgerEntry,
    Operation,
    SessionProjection,
    SessionStatus,
    SessionSummary,
)
from cash_kernel.exceptions import InvalidTransitionError, LedgerCorruptionError


def ordered(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Entries in replay order: timestamp, then per-tenant seq."""
    return sorted(entries, key=lambda e: e.sort_key)


def _fold(entries: list[LedgerEntry], tenant_id: str | None) -> SessionProjection:
    if not entries:
        if tenant_id is None:
            raise ValueError("tenant_id is required to project an empty ledger")
        return SessionProjection.empty(tenant_id)

    first = entries[0]
    tenant_id = tenant_id if tenant_id is not None else first.tenant_id
    session_id = first.session_id

    def corrupt(reason: str) -> LedgerCorruptionError:
        return LedgerCorruptionError(session_id=str(session_id), reason=reason)

    if first.kind is not EntryKind.OPEN:
        raise corrupt(f"first entry is {first.kind.value}, expected open")

    status = SessionStatus.CLOSED
    balance = ZERO
    supplied = ZERO
    withdrawn = ZERO
    closed_at = None
    counted_amount = None

    for entry in entries:
        if entry.tenant_id != tenant_id:
            raise corrupt(f"entry #{entry.seq} belongs to tenant {entry.tenant_id}")
        if entry.session_id != session_id:
            raise corrupt(f"entry #{entry.seq} belongs to session {entry.session_id}")
        try:
            status = next_status(status, entry.kind)
        except InvalidTransitionError as exc:
            raise corrupt(f"entry #{entry.seq}: {exc}") from exc

        if entry.kind is EntryKind.CLOSE and entry.amount != ZERO:
            raise corrupt(f"close entry #{entry.seq} carries amount {entry.amount}")

        balance += BALANCE_SIGN[entry.kind] * entry.amount
        if balance < ZERO:
            raise corrupt(f"balance negative after entry #{entry.seq}")

        if entry.kind is EntryKind.SUPPLY:
            supplied += entry.amount
        elif entry.kind is EntryKind.WITHDRAW:
            withdrawn += entry.amount
        elif entry.kind is EntryKind.CLOSE:
            closed_at = entry.timestamp
            counted_amount = entry.counted_amount

    last = entries[-1]
    return SessionProjection(
        tenant_id=tenant_id,
        status=status,
        balance=balance,
        session_id=session_id,
        opened_at=first.timestamp,
        closed_at=closed_at,
        opening_balance=first.amount,
        total_supplied=supplied,
        total_withdrawn=withdrawn,
        entry_count=len(entries),
        first_seq=first.seq,
        last_seq=last.seq,
        last_timestamp=last.timestamp,
        counted_amount=counted_amount,
    )


def project(
    entries: Iterable[LedgerEntry],
    *,
    tenant_id: str | None = None,
) -> SessionProjection:
    """
    Fold one session's entries into its projection.

    Args:
        entries: Entries of a single session, in any order.
        tenant_id: Required when entries may be empty; when given, every
            entry must belong to it.

    Returns:
        SessionProjection.  No entries means closed with zero balance.
    """
    return _fold(ordered(entries), tenant_id)


def project_as_of(
    entries: Iterable[LedgerEntry],
    n: int,
    *,
    tenant_id: str | None = None,
) -> SessionProjection:
    """
    Projection after the first ``n`` entries in replay order.

    ``n`` larger than the number of entries projects all of them.
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    replay = ordered(entries)
    if tenant_id is None and replay:
        tenant_id = replay[0].tenant_id
    return _fold(replay[:n], tenant_id)


def summarize(
    entries: Iterable[LedgerEntry],
    *,
    business_timezone: tzinfo = timezone.utc,
) -> SessionSummary:
    """
    History summary of one session.

    The business date is the calendar date of the Open entry in
    ``business_timezone``.

    Raises:
        ValueError: If entries is empty.
        LedgerCorruptionError: As for project().
    """
    replay = ordered(entries)
    if not replay:
        raise ValueError("cannot summarize a session without entries")
    projection = _fold(replay, None)
    operations = tuple(
        Operation(
            kind=e.kind,
            amount=e.amount,
            timestamp=e.timestamp,
            seq=e.seq,
            notes=e.notes,
        )
        for e in replay
        if e.kind in (EntryKind.SUPPLY, EntryKind.WITHDRAW)
    )
    return SessionSummary(
        projection=projection,
        business_date=projection.opened_at.astimezone(business_timezone).date(),
        operations=operations,
    )


def signed_amount(entry: LedgerEntry) -> Decimal:
    """Balance effect of a single entry."""
    return BALANCE_SIGN[entry.kind] * entry.amount
