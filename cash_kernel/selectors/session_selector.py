"""
Module: cash_kernel.selectors.session_selector
Responsibility: Read-only queries over cash-register sessions: current
    status, a single session (optionally as of its first N entries), the
    raw entries of a session and per-session history for a date range.
Architecture position: Kernel > Selectors.  Reads entries through
    LedgerSelector, queries the cash_sessions cache directly and folds with
    domain/projector.py.

Invariants enforced:
    - Tenant scoping: every query filters on tenant_id.
    - Ledger is authoritative: balances and operations are always folded
      from ledger_entries.  The cash_sessions cache is only used to find
      which sessions fall in a business-date range.

Failure modes:
    - SessionNotFoundError when a session has no entries for the tenant.
    - InvalidDateRangeError when a history range starts after it ends.
    - LedgerCorruptionError from the projector for malformed ledgers.
"""

from datetime import date, timezone, tzinfo
from uuid import UUID

from sqlalchemy import select

from cash_kernel.domain.projector import project, project_as_of, summarize
from cash_kernel.domain.values import (
    LedgerEntry,
    SessionProjection,
    SessionSummary,
)
from cash_kernel.exceptions import InvalidDateRangeError, SessionNotFoundError
from cash_kernel.models.cash_session import CashSessionModel
from cash_kernel.selectors.base import BaseSelector
from cash_kernel.selectors.ledger_selector import LedgerSelector


class SessionSelector(BaseSelector):
    """
    Read-only queries for register sessions.

    Contract:
        Returns frozen DTOs from cash_kernel.domain.values.  Never flushes,
        adds or commits.
    """

    def __init__(
        self,
        session,
        *,
        business_timezone: tzinfo = timezone.utc,
        decimal_places: int | None = None,
    ):
        super().__init__(session)
        self._business_timezone = business_timezone
        self._ledger = LedgerSelector(session, decimal_places=decimal_places)

    def _load(self, tenant_id: str, session_id: UUID) -> list[LedgerEntry]:
        return list(self._ledger.read_all(tenant_id, session_id))

    def latest_session_id(self, tenant_id: str) -> UUID | None:
        return self._ledger.latest_session_id(tenant_id)

    def status(self, tenant_id: str) -> SessionProjection:
        """
        Current state of the tenant's register.

        A tenant without sessions is closed with zero balance.
        """
        session_id = self.latest_session_id(tenant_id)
        if session_id is None:
            return SessionProjection.empty(tenant_id)
        return project(self._load(tenant_id, session_id), tenant_id=tenant_id)

    def entries(self, tenant_id: str, session_id: UUID) -> list[LedgerEntry]:
        """Entries of one session in replay order."""
        entries = self._load(tenant_id, session_id)
        if not entries:
            raise SessionNotFoundError(tenant_id, str(session_id))
        return entries

    def session_projection(
        self,
        tenant_id: str,
        session_id: UUID,
        *,
        as_of_entry: int | None = None,
    ) -> SessionProjection:
        """
        Projection of one session, optionally after its first N entries.
        """
        entries = self.entries(tenant_id, session_id)
        if as_of_entry is None:
            return project(entries, tenant_id=tenant_id)
        return project_as_of(entries, as_of_entry, tenant_id=tenant_id)

    def history(self, tenant_id: str, start: date, end: date) -> list[SessionSummary]:
        """
        Sessions whose business date lies in ``[start, end]``.

        Ordered by opening time, then by the seq of the Open entry.
        """
        if start > end:
            raise InvalidDateRangeError(start, end)

        session_ids = self.session.execute(
            select(CashSessionModel.id)
            .where(
                CashSessionModel.tenant_id == tenant_id,
                CashSessionModel.business_date >= start,
                CashSessionModel.business_date <= end,
            )
            .order_by(CashSessionModel.opened_at, CashSessionModel.first_seq)
        ).scalars().all()

        return [
            summarize(
                self._load(tenant_id, session_id),
                business_timezone=self._business_timezone,
            )
            for session_id in session_ids
        ]
