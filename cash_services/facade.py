"""
CashRegisterFacade -- the public command and query surface of the register.

Responsibility:
    Validates caller input at the boundary, serializes commands per
    tenant, runs each command in its own database transaction, turns
    failures into CommandResult values, logs outcomes and dispatches
    domain events after commit.  Queries run in their own read
    transaction without the tenant lock.

Architecture position:
    Services layer.  Wires cash_config values into cash_kernel's
    SessionEngine and SessionSelector.  Owns the transaction boundary
    (session_scope); the kernel only flushes.

Invariants enforced:
    - Commands never raise kernel errors: every CashKernelError becomes a
      REJECTED CommandResult.  Programming errors (wrong tenant id type,
      non-string notes) still raise.
    - One command per tenant at a time: TenantLockRegistry in-process,
      the register_locks row lock across processes.
    - Events are dispatched only after commit.

Failure modes:
    - StorageUnavailableError (as a rejected result) when the tenant lock
      is not obtained within database.lock_timeout_seconds.
    - Queries raise SessionNotFoundError, InvalidDateRangeError,
      LedgerCorruptionError or StorageUnavailableError.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Generator
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError
from sqlalchemy.orm import Session, sessionmaker

from cash_config import CashConfig
from cash_kernel.db.engine import session_scope
from cash_kernel.db.types import ACTOR_ID_LENGTH, TENANT_ID_LENGTH
from cash_kernel.domain.clock import Clock, SystemClock
from cash_kernel.domain.events import CommandRejected, event_for_entry
from cash_kernel.domain.state_machine import (
    CloseSession,
    Command,
    OpenSession,
    SupplyCash,
    WithdrawCash,
)
from cash_kernel.domain.values import (
    LedgerEntry,
    SessionProjection,
    SessionSummary,
    normalize_notes,
)
from cash_kernel.exceptions import CashKernelError, StorageUnavailableError
from cash_kernel.logging_config import LogContext, get_logger
from cash_kernel.selectors.session_selector import SessionSelector
from cash_kernel.services.session_engine import AppliedCommand, SessionEngine
from cash_services.notifications import EventDispatcher
from cash_services.observability import log_command_accepted, log_command_rejected

logger = get_logger("services.facade")

_DB_ERRORS = (OperationalError, DBAPIError, TimeoutError)


class CommandStatus(str, Enum):
    """Outcome of a register command."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CommandResult:
    """Result of a register command."""

    status: CommandStatus
    command: str
    tenant_id: str
    projection: SessionProjection | None = None
    entry_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None
    error: CashKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status is CommandStatus.ACCEPTED

    @classmethod
    def accepted(cls, command: str, applied: AppliedCommand) -> CommandResult:
        return cls(
            status=CommandStatus.ACCEPTED,
            command=command,
            tenant_id=applied.entry.tenant_id,
            projection=applied.projection,
            entry_id=applied.entry.id,
        )

    @classmethod
    def rejected(cls, command: str, tenant_id: str, error: CashKernelError) -> CommandResult:
        return cls(
            status=CommandStatus.REJECTED,
            command=command,
            tenant_id=tenant_id,
            error_code=error.code,
            error_message=str(error),
            error=error,
        )


class TenantLockRegistry:
    """
    One mutex per tenant for commands issued from this process.

    Acquisition is bounded; a timeout raises StorageUnavailableError.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = self._locks[tenant_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, tenant_id: str) -> Generator[None, None, None]:
        lock = self._lock_for(tenant_id)
        if not lock.acquire(timeout=self._timeout):
            raise StorageUnavailableError(
                "acquire_tenant_lock",
                f"timed out after {self._timeout}s waiting for tenant {tenant_id}",
            )
        try:
            yield
        finally:
            lock.release()


def _require_identifier(name: str, value: Any, max_length: int) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")
    value = value.strip()
    if not value:
        raise ValueError(f"{name} must not be empty")
    if len(value) > max_length:
        raise ValueError(f"{name} exceeds {max_length} characters")
    return value


class CashRegisterFacade:
    """
    Commands and queries for tenant-scoped cash-register sessions.

    Usage:
        facade = CashRegisterFacade(get_session_factory(), get_active_config())
        result = facade.open_session("acme", "500.00", "morning float")
        if not result.is_success:
            print(result.error_code, result.error_message)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: CashConfig,
        clock: Clock | None = None,
        dispatcher: EventDispatcher | None = None,
        lock_registry: TenantLockRegistry | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or EventDispatcher()
        self._locks = lock_registry or TenantLockRegistry(
            config.database.lock_timeout_seconds
        )
        self._tz = config.register.tzinfo

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def config(self) -> CashConfig:
        return self._config

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def open_session(
        self,
        tenant_id: str,
        amount: Any,
        notes: str | None = None,
        *,
        actor_id: str | None = None,
    ) -> CommandResult:
        """Open the register with an initial float."""
        tenant_id, notes, actor_id = self._boundary(tenant_id, notes, actor_id)
        return self._run(OpenSession(tenant_id, amount, notes, actor_id))

    def supply(
        self,
        tenant_id: str,
        amount: Any,
        notes: str | None = None,
        *,
        actor_id: str | None = None,
    ) -> CommandResult:
        """Add cash to the open register."""
        tenant_id, notes, actor_id = self._boundary(tenant_id, notes, actor_id)
        return self._run(SupplyCash(tenant_id, amount, notes, actor_id))

    def withdraw(
        self,
        tenant_id: str,
        amount: Any,
        notes: str | None = None,
        *,
        actor_id: str | None = None,
    ) -> CommandResult:
        """Take cash out of the open register, never beyond its balance."""
        tenant_id, notes, actor_id = self._boundary(tenant_id, notes, actor_id)
        return self._run(WithdrawCash(tenant_id, amount, notes, actor_id))

    def close_session(
        self,
        tenant_id: str,
        notes: str | None = None,
        *,
        counted_amount: Any = None,
        actor_id: str | None = None,
    ) -> CommandResult:
        """
        Close the open register.

        ``counted_amount`` records the physically counted cash; the
        projection then reports its discrepancy against the balance.
        """
        tenant_id, notes, actor_id = self._boundary(tenant_id, notes, actor_id)
        return self._run(CloseSession(tenant_id, notes, counted_amount, actor_id))

    def _boundary(
        self,
        tenant_id: Any,
        notes: Any,
        actor_id: Any,
    ) -> tuple[str, str | None, str | None]:
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        if actor_id is not None:
            actor_id = _require_identifier("actor_id", actor_id, ACTOR_ID_LENGTH)
        return tenant_id, normalize_notes(notes), actor_id

    def _engine(self, session: Session) -> SessionEngine:
        return SessionEngine(
            session,
            self._clock,
            decimal_places=self._config.register.decimal_places,
            business_timezone=self._tz,
            lock_timeout_seconds=self._config.database.lock_timeout_seconds,
        )

    def _apply(self, command: Command) -> AppliedCommand:
        with self._locks.hold(command.tenant_id):
            try:
                with session_scope(self._session_factory) as session:
                    return self._engine(session).execute(command)
            except _DB_ERRORS as exc:
                raise StorageUnavailableError("commit", str(exc)) from exc

    def _run(self, command: Command) -> CommandResult:
        name = command.kind.value
        started = time.perf_counter()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            tenant_id=command.tenant_id,
            command=name,
            actor_id=command.actor_id,
        ):
            try:
                applied = self._apply(command)
            except CashKernelError as exc:
                duration_ms = (time.perf_counter() - started) * 1000
                log_command_rejected(
                    command=name,
                    tenant_id=command.tenant_id,
                    error_code=exc.code,
                    error_message=str(exc),
                    duration_ms=duration_ms,
                )
                self._dispatcher.dispatch(
                    CommandRejected(
                        tenant_id=command.tenant_id,
                        occurred_at=self._clock.now(),
                        command=name,
                        error_code=exc.code,
                        error_message=str(exc),
                    )
                )
                return CommandResult.rejected(name, command.tenant_id, exc)

            duration_ms = (time.perf_counter() - started) * 1000
            with LogContext.bind(session_id=applied.entry.session_id):
                log_command_accepted(
                    command=name,
                    tenant_id=command.tenant_id,
                    duration_ms=duration_ms,
                    entry_id=str(applied.entry.id),
                    seq=applied.entry.seq,
                    balance=str(applied.projection.balance),
                    status=applied.projection.status.value,
                )
                self._dispatcher.dispatch(
                    event_for_entry(applied.entry, applied.projection)
                )
            return CommandResult.accepted(name, applied)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @contextmanager
    def _selector(self) -> Generator[SessionSelector, None, None]:
        try:
            with session_scope(self._session_factory, read_only=True) as session:
                yield SessionSelector(
                    session,
                    business_timezone=self._tz,
                    decimal_places=self._config.register.decimal_places,
                )
        except _DB_ERRORS as exc:
            raise StorageUnavailableError("query", str(exc)) from exc

    def get_status(self, tenant_id: str) -> SessionProjection:
        """Current state of the tenant's register."""
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        with self._selector() as selector:
            return selector.status(tenant_id)

    def get_history(
        self,
        tenant_id: str,
        start: date | datetime,
        end: date | datetime,
    ) -> list[SessionSummary]:
        """
        Sessions whose business date lies in the inclusive range.

        Datetimes are converted to dates in the business timezone; naive
        datetimes are taken as already local.
        """
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        with self._selector() as selector:
            return selector.history(
                tenant_id, self._business_date(start), self._business_date(end)
            )

    def get_session(
        self,
        tenant_id: str,
        session_id: UUID | str,
        *,
        as_of_entry: int | None = None,
    ) -> SessionProjection:
        """One session's projection, optionally after its first N entries."""
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        with self._selector() as selector:
            return selector.session_projection(
                tenant_id, _as_uuid(session_id), as_of_entry=as_of_entry
            )

    def get_entries(self, tenant_id: str, session_id: UUID | str) -> list[LedgerEntry]:
        """Ledger entries of one session in replay order."""
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        with self._selector() as selector:
            return selector.entries(tenant_id, _as_uuid(session_id))

    def rebuild_summaries(self, tenant_id: str) -> list[SessionSummary]:
        """Regenerate the cached session summaries of a tenant from its ledger."""
        tenant_id = _require_identifier("tenant_id", tenant_id, TENANT_ID_LENGTH)
        with self._locks.hold(tenant_id):
            try:
                with session_scope(self._session_factory) as session:
                    return self._engine(session).rebuild_summaries(tenant_id)
            except _DB_ERRORS as exc:
                raise StorageUnavailableError("rebuild_summaries", str(exc)) from exc

    def _business_date(self, value: date | datetime) -> date:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self._tz).date()
        if isinstance(value, date):
            return value
        raise TypeError(f"expected date or datetime, got {type(value).__name__}")


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))
