"""
Module: cash_kernel.models.ledger_entry
Responsibility: ORM persistence for ledger entries -- the single source of
    truth for every cash-register session.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: ORM listeners (db/immutability.py) and database triggers
      (db/triggers.py) refuse UPDATE and DELETE.
    - Per-tenant ordering: (tenant_id, seq) is UNIQUE; seq is allocated under
      the tenant lock and breaks ties between equal timestamps.
    - Amounts are non-negative; the sign is carried by kind.

Failure modes:
    - IntegrityError on duplicate (tenant_id, seq) -- only possible if the
      tenant lock was bypassed.
    - ImmutabilityViolationError on UPDATE/DELETE through the ORM.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cash_kernel.db.base import Base, UUIDString
from cash_kernel.db.types import ACTOR_ID_LENGTH, NOTES_LENGTH, TENANT_ID_LENGTH


class LedgerEntryModel(Base):
    """
    One immutable cash movement.

    Contract:
        Rows are written once by LedgerStore.append() and never changed.
        Corrections are new entries, never edits.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "seq", name="uq_ledger_tenant_seq"),
        Index(
            "idx_ledger_session_order",
            "tenant_id",
            "session_id",
            "timestamp",
            "seq",
        ),
        Index("idx_ledger_tenant_kind_seq", "tenant_id", "kind", "seq"),
        CheckConstraint("amount >= 0", name="ck_ledger_amount_non_negative"),
        CheckConstraint(
            "kind IN ('open', 'supply', 'withdraw', 'close')",
            name="ck_ledger_kind",
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)

    session_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seq: Mapped[int] = mapped_column(nullable=False)

    # open | supply | withdraw | close (domain.values.EntryKind values)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(NOTES_LENGTH), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    # Physically counted cash recorded when closing; never affects balance
    counted_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    actor_id: Mapped[str | None] = mapped_column(String(ACTOR_ID_LENGTH), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntryModel {self.tenant_id}#{self.seq} "
            f"{self.kind} {self.amount}>"
        )
