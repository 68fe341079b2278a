"""
Values -- Immutable domain value objects for the cash register.

Responsibility:
    Defines the entry kinds and register statuses, the ledger entry DTO,
    the session projection and history summary, and the boundary parser
    that turns caller input into a validated Decimal amount.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() exists as a boundary converter and is only invoked from
    the service and selector layers.

Invariants enforced:
    - Decimal-only money: parse_amount() never returns a float and rejects
      bool, None, NaN and infinities.
    - Amounts never carry more fractional digits than the currency allows;
      they are rejected, never silently rounded.  Accepted amounts carry
      exactly the currency's scale, so "1200" and "1200.00" print alike.
    - LedgerEntry timestamps are timezone-aware.

Failure modes:
    - InvalidAmountError from parse_amount().
    - ValueError on LedgerEntry with a naive timestamp or negative amount.
    - TypeError from normalize_notes() for non-string notes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from cash_kernel.db.types import NOTES_LENGTH, round_money
from cash_kernel.exceptions import InvalidAmountError

if TYPE_CHECKING:
    from cash_kernel.models.ledger_entry import LedgerEntryModel

ZERO = Decimal("0")

# Largest single movement accepted by a command
MAX_AMOUNT = Decimal("1000000000000")


class EntryKind(str, Enum):
    """Kind of a ledger entry."""

    OPEN = "open"
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    CLOSE = "close"


class SessionStatus(str, Enum):
    """Status of a tenant's cash register."""

    CLOSED = "closed"
    OPEN = "open"


def parse_amount(
    value: Any,
    decimal_places: int = 2,
    *,
    allow_zero: bool = False,
) -> Decimal:
    """
    Validate caller input as a monetary amount.

    Accepts Decimal, int, numeric strings and floats (converted through
    ``str`` so 0.1 stays 0.1).  The result is always a finite Decimal.

    Args:
        value: Raw amount supplied by the caller.
        decimal_places: Fractional digits allowed by the register currency.
        allow_zero: Accept zero (used for counted cash on close).

    Returns:
        The amount as a Decimal with exactly ``decimal_places`` digits
        after the point.

    Raises:
        InvalidAmountError: For any input that is not a positive (or, with
            allow_zero, non-negative) finite decimal within precision.
    """
    if value is None:
        raise InvalidAmountError(value, "amount is required")
    if isinstance(value, bool):
        raise InvalidAmountError(value, "a boolean is not an amount")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        # Decimal() also takes Python literal forms such as "1_000"
        if "_" in value:
            raise InvalidAmountError(value, "not a number")
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmountError(value, "not a number") from None
    else:
        raise InvalidAmountError(
            value, f"unsupported type {type(value).__name__}"
        )

    if not amount.is_finite():
        raise InvalidAmountError(value, "amount must be finite")
    if allow_zero:
        if amount < ZERO:
            raise InvalidAmountError(value, "amount must not be negative")
    elif amount <= ZERO:
        raise InvalidAmountError(value, "amount must be greater than zero")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(value, f"amount exceeds {MAX_AMOUNT}")
    if amount.normalize().as_tuple().exponent < -decimal_places:
        raise InvalidAmountError(
            value, f"more than {decimal_places} decimal places"
        )
    return round_money(amount, decimal_places)


def normalize_notes(notes: str | None) -> str | None:
    """
    Strip notes and map blank text to None.

    Raises:
        TypeError: If notes is not a string.
        ValueError: If notes exceed the stored column width.
    """
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise TypeError(f"notes must be a string, got {type(notes).__name__}")
    notes = notes.strip()
    if len(notes) > NOTES_LENGTH:
        raise ValueError(f"notes exceed {NOTES_LENGTH} characters")
    return notes or None


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """
    One immutable cash movement.

    ``amount`` is a non-negative magnitude; the balance effect comes from
    ``kind``.  ``seq`` is the per-tenant insertion order and breaks ties
    between equal timestamps.
    """

    id: UUID
    tenant_id: str
    session_id: UUID
    seq: int
    kind: EntryKind
    amount: Decimal
    timestamp: datetime
    notes: str | None = None
    counted_amount: Decimal | None = None
    actor_id: str | None = None

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError("LedgerEntry.timestamp must be timezone-aware")
        if not isinstance(self.kind, EntryKind):
            object.__setattr__(self, "kind", EntryKind(self.kind))
        if self.amount < ZERO:
            raise ValueError(f"LedgerEntry.amount must be non-negative: {self.amount}")

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.timestamp, self.seq)

    @classmethod
    def from_model(
        cls,
        model: LedgerEntryModel,
        decimal_places: int | None = None,
    ) -> LedgerEntry:
        """
        Convert a stored row.  With ``decimal_places``, amounts are brought
        from the column's storage scale back to the currency's.
        """
        amount, counted = model.amount, model.counted_amount
        if decimal_places is not None:
            amount = round_money(amount, decimal_places)
            if counted is not None:
                counted = round_money(counted, decimal_places)
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            session_id=model.session_id,
            seq=model.seq,
            kind=EntryKind(model.kind),
            amount=amount,
            timestamp=model.timestamp,
            notes=model.notes,
            counted_amount=counted,
            actor_id=model.actor_id,
        )


@dataclass(frozen=True, slots=True)
class SessionProjection:
    """
    State of a tenant's register derived from ledger entries.

    A tenant with no sessions projects as closed with zero balance and no
    session id.
    """

    tenant_id: str
    status: SessionStatus
    balance: Decimal
    session_id: UUID | None = None
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    opening_balance: Decimal = ZERO
    total_supplied: Decimal = ZERO
    total_withdrawn: Decimal = ZERO
    entry_count: int = 0
    first_seq: int | None = None
    last_seq: int | None = None
    last_timestamp: datetime | None = None
    counted_amount: Decimal | None = None

    @classmethod
    def empty(cls, tenant_id: str) -> SessionProjection:
        return cls(tenant_id=tenant_id, status=SessionStatus.CLOSED, balance=ZERO)

    @property
    def is_open(self) -> bool:
        return self.status is SessionStatus.OPEN

    @property
    def discrepancy(self) -> Decimal | None:
        """Counted cash minus the ledger balance, when a count was recorded."""
        if self.counted_amount is None:
            return None
        return self.counted_amount - self.balance


@dataclass(frozen=True, slots=True)
class Operation:
    """A supply or withdrawal inside a session, as listed in history."""

    kind: EntryKind
    amount: Decimal
    timestamp: datetime
    seq: int
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """History row for one session: its projection plus the movements."""

    projection: SessionProjection
    business_date: date
    operations: tuple[Operation, ...] = field(default_factory=tuple)

    @property
    def session_id(self) -> UUID | None:
        return self.projection.session_id

    @property
    def opened_at(self) -> datetime | None:
        return self.projection.opened_at

    @property
    def closed_at(self) -> datetime | None:
        return self.projection.closed_at

    @property
    def final_balance(self) -> Decimal:
        return self.projection.balance
