"""
State machine -- Pure guards for register commands.

Responsibility:
    Decides whether a command is legal against the current projection and,
    if so, which single ledger entry it produces.  No I/O, no clock, no
    identifiers: the session engine stamps time, seq and ids.

Architecture position:
    Kernel > Domain -- pure functional core.  Used by
    services/session_engine.py (commands) and domain/projector.py (replay).

Transitions:

    From    | Command  | Guard                        | To
    --------|----------|------------------------------|--------
    closed  | open     | amount > 0                   | open
    open    | supply   | amount > 0                   | open
    open    | withdraw | 0 < amount <= balance        | open
    open    | close    | counted amount, if any, >= 0 | closed

Every other (status, command) pair raises InvalidTransitionError.

Validation order: amount, then transition, then balance.  A closed
register asked to withdraw "abc" reports the amount, not the status.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, ClassVar, Union

from cash_kernel.domain.values import (
    ZERO,
    EntryKind,
    SessionProjection,
    SessionStatus,
    parse_amount,
)
from cash_kernel.exceptions import InsufficientBalanceError, InvalidTransitionError

TRANSITIONS: dict[tuple[SessionStatus, EntryKind], SessionStatus] = {
    (SessionStatus.CLOSED, EntryKind.OPEN): SessionStatus.OPEN,
    (SessionStatus.OPEN, EntryKind.SUPPLY): SessionStatus.OPEN,
    (SessionStatus.OPEN, EntryKind.WITHDRAW): SessionStatus.OPEN,
    (SessionStatus.OPEN, EntryKind.CLOSE): SessionStatus.CLOSED,
}

# Sign applied to an entry's amount when folding the balance
BALANCE_SIGN: dict[EntryKind, int] = {
    EntryKind.OPEN: 1,
    EntryKind.SUPPLY: 1,
    EntryKind.WITHDRAW: -1,
    EntryKind.CLOSE: 0,
}


def next_status(status: SessionStatus, kind: EntryKind) -> SessionStatus:
    """
    Status reached by applying ``kind`` in ``status``.

    Raises:
        InvalidTransitionError: If the pair is not in TRANSITIONS.
    """
    try:
        return TRANSITIONS[(status, kind)]
    except KeyError:
        raise InvalidTransitionError(command=kind.value, status=status.value) from None


@dataclass(frozen=True, slots=True)
class OpenSession:
    tenant_id: str
    amount: Any
    notes: str | None = None
    actor_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.OPEN


@dataclass(frozen=True, slots=True)
class SupplyCash:
    tenant_id: str
    amount: Any
    notes: str | None = None
    actor_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.SUPPLY


@dataclass(frozen=True, slots=True)
class WithdrawCash:
    tenant_id: str
    amount: Any
    notes: str | None = None
    actor_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.WITHDRAW


@dataclass(frozen=True, slots=True)
class CloseSession:
    tenant_id: str
    notes: str | None = None
    counted_amount: Any = None
    actor_id: str | None = None

    kind: ClassVar[EntryKind] = EntryKind.CLOSE


Command = Union[OpenSession, SupplyCash, WithdrawCash, CloseSession]


@dataclass(frozen=True, slots=True)
class ProposedEntry:
    """Validated effect of a command, before time, seq and ids are assigned."""

    kind: EntryKind
    amount: Decimal
    notes: str | None = None
    counted_amount: Decimal | None = None
    actor_id: str | None = None


def decide(
    command: Command,
    projection: SessionProjection,
    *,
    decimal_places: int = 2,
) -> ProposedEntry:
    """
    Validate ``command`` against ``projection``.

    Args:
        command: The register command, with its raw amount.
        projection: Current state of the tenant's register.
        decimal_places: Currency precision for amount validation.

    Returns:
        The single ledger entry the command would append.

    Raises:
        InvalidAmountError: Amount is missing, malformed or out of range.
        InvalidTransitionError: Command is illegal in the current status.
        InsufficientBalanceError: Withdrawal exceeds the balance.
    """
    counted_amount = None
    if isinstance(command, CloseSession):
        amount = ZERO
        if command.counted_amount is not None:
            counted_amount = parse_amount(
                command.counted_amount, decimal_places, allow_zero=True
            )
    else:
        amount = parse_amount(command.amount, decimal_places)

    next_status(projection.status, command.kind)

    if command.kind is EntryKind.WITHDRAW and amount > projection.balance:
        raise InsufficientBalanceError(requested=amount, available=projection.balance)

    return ProposedEntry(
        kind=command.kind,
        amount=amount,
        notes=command.notes,
        counted_amount=counted_amount,
        actor_id=command.actor_id,
    )
