"""
SessionEngine -- transactional shell around the register state machine.

Responsibility:
    Executes one register command inside the caller's transaction:
    lock the tenant, project current state from the ledger, run the pure
    guards, append the single resulting entry and refresh the cached
    session summary.

Architecture position:
    Kernel > Services -- imperative shell.  Orchestrates
    TenantLockService, LedgerStore, domain.state_machine and
    domain.projector.  Called by cash_services.facade.

Invariants enforced:
    - Atomicity: lock, guard, append and summary refresh share the caller's
      transaction.  The engine flushes, never commits.
    - Ledger is authoritative: command-path state is always projected from
      ledger_entries, never read from the cash_sessions cache.
    - Timestamps never step backwards: a clock earlier than the tenant's
      last entry is clamped to that entry's timestamp.

Failure modes:
    - InvalidAmountError / InvalidTransitionError / InsufficientBalanceError
      from the guards.  Nothing has been written when they are raised
      (only the lock row, which the caller's rollback releases).
    - StorageUnavailableError for database faults, lock timeouts included.
    - LedgerCorruptionError if stored entries violate the state machine.
"""

from dataclasses import dataclass
from datetime import timezone, tzinfo
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError

from cash_kernel.domain.clock import Clock
from cash_kernel.domain.projector import project, summarize
from cash_kernel.domain.state_machine import Command, decide
from cash_kernel.domain.values import (
    EntryKind,
    LedgerEntry,
    SessionProjection,
    SessionSummary,
)
from cash_kernel.exceptions import StorageUnavailableError
from cash_kernel.logging_config import get_logger
from cash_kernel.models.cash_session import CashSessionModel
from cash_kernel.services.base import BaseService
from cash_kernel.services.ledger_store import LedgerStore
from cash_kernel.services.lock_service import TenantLockService

logger = get_logger("services.session_engine")


@dataclass(frozen=True, slots=True)
class AppliedCommand:
    """The entry a command appended and the state it produced."""

    entry: LedgerEntry
    projection: SessionProjection


class SessionEngine(BaseService):
    """
    Apply register commands for any tenant within one database session.

    Usage:
        with session_scope(factory) as session:
            engine = SessionEngine(session, clock)
            applied = engine.execute(WithdrawCash("acme", "600"))
    """

    def __init__(
        self,
        session,
        clock: Clock,
        *,
        decimal_places: int = 2,
        business_timezone: tzinfo = timezone.utc,
        lock_timeout_seconds: float = 5.0,
    ):
        super().__init__(session)
        self._clock = clock
        self._decimal_places = decimal_places
        self._business_timezone = business_timezone
        self._store = LedgerStore(session, decimal_places=decimal_places)
        self._locks = TenantLockService(session, lock_timeout_seconds)

    @property
    def store(self) -> LedgerStore:
        return self._store

    def current_state(self, tenant_id: str) -> tuple[SessionProjection, list[LedgerEntry]]:
        """Projection of the tenant's latest session and its entries."""
        session_id = self._store.latest_session_id(tenant_id)
        if session_id is None:
            return SessionProjection.empty(tenant_id), []
        entries = list(self._store.read_all(tenant_id, session_id))
        return project(entries, tenant_id=tenant_id), entries

    def execute(self, command: Command) -> AppliedCommand:
        """
        Validate and apply one command.

        Returns:
            AppliedCommand with the appended entry and the new projection.

        Raises:
            CommandError subclasses, StorageUnavailableError,
            LedgerCorruptionError.
        """
        try:
            return self._execute(command)
        except (OperationalError, DBAPIError, TimeoutError) as exc:
            raise StorageUnavailableError(command.kind.value, str(exc)) from exc

    def _execute(self, command: Command) -> AppliedCommand:
        tenant_id = command.tenant_id
        lock_row = self._locks.acquire(tenant_id)
        projection, entries = self.current_state(tenant_id)

        proposed = decide(command, projection, decimal_places=self._decimal_places)

        if proposed.kind is EntryKind.OPEN:
            session_id = uuid4()
            entries = []
        else:
            session_id = projection.session_id

        timestamp = self._clock.now()
        last_ts = projection.last_timestamp
        if last_ts is not None and timestamp < last_ts:
            logger.warning(
                "clock_regression_clamped",
                extra={
                    "tenant_id": tenant_id,
                    "clock_time": timestamp.isoformat(),
                    "clamped_to": last_ts.isoformat(),
                },
            )
            timestamp = last_ts

        entry = LedgerEntry(
            id=uuid4(),
            tenant_id=tenant_id,
            session_id=session_id,
            seq=self._locks.next_seq(lock_row),
            kind=proposed.kind,
            amount=proposed.amount,
            timestamp=timestamp,
            notes=proposed.notes,
            counted_amount=proposed.counted_amount,
            actor_id=proposed.actor_id,
        )
        self._store.append(entry)

        entries.append(entry)
        new_projection = project(entries, tenant_id=tenant_id)
        self._write_summary(new_projection)
        return AppliedCommand(entry=entry, projection=new_projection)

    def _write_summary(self, projection: SessionProjection) -> None:
        """Upsert the cached cash_sessions row for a projection."""
        row = self.session.get(CashSessionModel, projection.session_id)
        if row is None:
            row = CashSessionModel(
                id=projection.session_id,
                tenant_id=projection.tenant_id,
            )
            self.session.add(row)
        row.status = projection.status.value
        row.business_date = projection.opened_at.astimezone(self._business_timezone).date()
        row.opened_at = projection.opened_at
        row.closed_at = projection.closed_at
        row.opening_balance = projection.opening_balance
        row.balance = projection.balance
        row.total_supplied = projection.total_supplied
        row.total_withdrawn = projection.total_withdrawn
        row.counted_amount = projection.counted_amount
        row.entry_count = projection.entry_count
        row.first_seq = projection.first_seq
        row.last_seq = projection.last_seq
        self.session.flush()

    def rebuild_summaries(self, tenant_id: str) -> list[SessionSummary]:
        """
        Regenerate the tenant's cash_sessions rows from the ledger.

        Holds the tenant lock so no command interleaves with the rebuild.
        """
        try:
            self._locks.acquire(tenant_id)
            session_ids = self._store.session_ids(tenant_id)
            self.session.execute(
                delete(CashSessionModel)
                .where(
                    CashSessionModel.tenant_id == tenant_id,
                    CashSessionModel.id.not_in(session_ids),
                )
                .execution_options(synchronize_session=False)
            )
            summaries = []
            # Oldest first so at most one row is open after each flush
            for session_id in session_ids:
                summary = summarize(
                    self._store.read_all(tenant_id, session_id),
                    business_timezone=self._business_timezone,
                )
                self._write_summary(summary.projection)
                summaries.append(summary)
        except (OperationalError, DBAPIError, TimeoutError) as exc:
            raise StorageUnavailableError("rebuild_summaries", str(exc)) from exc

        logger.info(
            "session_summaries_rebuilt",
            extra={"tenant_id": tenant_id, "sessions": len(summaries)},
        )
        return summaries
