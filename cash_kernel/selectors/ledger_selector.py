"""
Module: cash_kernel.selectors.ledger_selector
Responsibility: Ordered reads over ledger_entries.  The one place where
    replay order and "latest session" are defined; the ledger store and the
    session selector both read through it.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/.

Invariants enforced:
    - Tenant scoping: every query filters on tenant_id.
    - Replay order: entries of a session come back by (timestamp, seq).
    - Readers are lazy generators fetching STREAM_BATCH_SIZE rows per round
      trip; calling again issues a fresh query.
"""

from datetime import datetime
from typing import Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cash_kernel.domain.values import EntryKind, LedgerEntry
from cash_kernel.models.ledger_entry import LedgerEntryModel
from cash_kernel.selectors.base import BaseSelector

# Rows fetched per round trip when streaming a session
STREAM_BATCH_SIZE = 500


class LedgerSelector(BaseSelector):
    """
    Read ledger entries for one SQLAlchemy session.

    With ``decimal_places`` set, entries come back at the currency's scale
    rather than the column's storage scale.
    """

    def __init__(self, session: Session, *, decimal_places: int | None = None):
        super().__init__(session)
        self._decimal_places = decimal_places

    def read_all(self, tenant_id: str, session_id: UUID) -> Iterator[LedgerEntry]:
        """All entries of a session in (timestamp, seq) order."""
        stmt = (
            select(LedgerEntryModel)
            .where(
                LedgerEntryModel.tenant_id == tenant_id,
                LedgerEntryModel.session_id == session_id,
            )
            .order_by(LedgerEntryModel.timestamp, LedgerEntryModel.seq)
            .execution_options(yield_per=STREAM_BATCH_SIZE)
        )
        for model in self.session.execute(stmt).scalars():
            yield LedgerEntry.from_model(model, self._decimal_places)

    def latest_session_id(self, tenant_id: str) -> UUID | None:
        """Session of the tenant's most recent Open entry, if any."""
        return self.session.execute(
            select(LedgerEntryModel.session_id)
            .where(
                LedgerEntryModel.tenant_id == tenant_id,
                LedgerEntryModel.kind == EntryKind.OPEN.value,
            )
            .order_by(LedgerEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def session_ids(self, tenant_id: str) -> list[UUID]:
        """Every session of a tenant, oldest Open first."""
        return list(
            self.session.execute(
                select(LedgerEntryModel.session_id)
                .where(
                    LedgerEntryModel.tenant_id == tenant_id,
                    LedgerEntryModel.kind == EntryKind.OPEN.value,
                )
                .order_by(LedgerEntryModel.timestamp, LedgerEntryModel.seq)
            ).scalars()
        )

    def read_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
    ) -> Iterator[LedgerEntry]:
        """
        Entries of every session opened in ``[start, end)``.

        Ordered by session open time, then (timestamp, seq) within a session.
        """
        opens = (
            select(
                LedgerEntryModel.session_id,
                LedgerEntryModel.timestamp.label("opened_at"),
                LedgerEntryModel.seq.label("open_seq"),
            )
            .where(
                LedgerEntryModel.tenant_id == tenant_id,
                LedgerEntryModel.kind == EntryKind.OPEN.value,
                LedgerEntryModel.timestamp >= start,
                LedgerEntryModel.timestamp < end,
            )
            .subquery()
        )
        stmt = (
            select(LedgerEntryModel)
            .join(opens, opens.c.session_id == LedgerEntryModel.session_id)
            .where(LedgerEntryModel.tenant_id == tenant_id)
            .order_by(
                opens.c.opened_at,
                opens.c.open_seq,
                LedgerEntryModel.timestamp,
                LedgerEntryModel.seq,
            )
            .execution_options(yield_per=STREAM_BATCH_SIZE)
        )
        for model in self.session.execute(stmt).scalars():
            yield LedgerEntry.from_model(model, self._decimal_places)
