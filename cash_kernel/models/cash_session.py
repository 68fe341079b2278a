"""
Module: cash_kernel.models.cash_session
Responsibility: ORM persistence for the cached per-session summary row.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Derived, never authoritative: every column is a projection of the
      session's ledger entries and is rewritten in the same transaction as
      each append.  rebuild_summaries() regenerates the table from the ledger.
    - At most one open session per tenant: partial UNIQUE index on tenant_id
      where status = 'open' (PostgreSQL and SQLite).

Failure modes:
    - IntegrityError from uq_cash_sessions_one_open if a second open session
      is written for the same tenant (only possible around the tenant lock).
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from cash_kernel.db.base import Base
from cash_kernel.db.types import TENANT_ID_LENGTH


class CashSessionModel(Base):
    """
    Cached summary of one open-to-close register cycle.

    The primary key ``id`` is the session id shared with its ledger entries.
    """

    __tablename__ = "cash_sessions"

    __table_args__ = (
        Index(
            "uq_cash_sessions_one_open",
            "tenant_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_cash_sessions_business_date", "tenant_id", "business_date"),
    )

    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    business_date: Mapped[date] = mapped_column(Date, nullable=False)

    opened_at: Mapped[datetime] = mapped_column(nullable=False)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    opening_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_supplied: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_withdrawn: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    counted_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    entry_count: Mapped[int] = mapped_column(nullable=False)

    first_seq: Mapped[int] = mapped_column(nullable=False)

    last_seq: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<CashSessionModel {self.tenant_id}:{self.id} {self.status} {self.balance}>"
