"""
TenantLockService -- per-tenant row lock and ledger sequence allocation.

Responsibility:
    Serializes register commands of one tenant across processes by
    locking the tenant's ``register_locks`` row (``SELECT ... FOR UPDATE``),
    and hands out the strictly increasing ``seq`` stored on that row.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by SessionEngine before it reads any state.

Invariants enforced:
    - The lock row is taken before the register state is read, so guard
      evaluation and append see the same state.
    - seq is never computed as max(seq) + 1; the locked counter row is the
      sole source of the next value.  Rollback returns the value.

Failure modes:
    - IntegrityError on concurrent first use of a tenant: handled with a
      savepoint rollback and a locked re-read.
    - OperationalError when PostgreSQL's lock_timeout expires (translated
      to StorageUnavailableError by SessionEngine).

SQLite ignores FOR UPDATE; there BEGIN IMMEDIATE (db/engine.py) and the
in-process tenant lock registry provide the same serialization.
"""

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from cash_kernel.logging_config import get_logger
from cash_kernel.models.register_lock import RegisterLockModel
from cash_kernel.services.base import BaseService

logger = get_logger("services.lock")


class TenantLockService(BaseService):
    """
    Acquire the tenant lock row and allocate ledger sequence numbers.

    Usage:
        lock = TenantLockService(session, lock_timeout_seconds=5)
        row = lock.acquire("acme")
        seq = lock.next_seq(row)
    """

    def __init__(self, session, lock_timeout_seconds: float = 5.0):
        super().__init__(session)
        self._lock_timeout_ms = max(1, int(lock_timeout_seconds * 1000))

    def _apply_timeouts(self) -> None:
        if self.session.get_bind().dialect.name != "postgresql":
            return
        # SET LOCAL does not accept bind parameters
        self.session.execute(text(f"SET LOCAL lock_timeout = {self._lock_timeout_ms}"))
        self.session.execute(
            text(f"SET LOCAL statement_timeout = {self._lock_timeout_ms * 2}")
        )

    def _select_locked(self, tenant_id: str) -> RegisterLockModel | None:
        return self.session.execute(
            select(RegisterLockModel)
            .where(RegisterLockModel.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def acquire(self, tenant_id: str) -> RegisterLockModel:
        """
        Lock the tenant's row, creating it on first use.

        Postconditions:
            The row is locked until the caller's transaction ends.
        """
        self._apply_timeouts()
        row = self._select_locked(tenant_id)
        if row is not None:
            return row

        savepoint = self.session.begin_nested()
        try:
            row = RegisterLockModel(tenant_id=tenant_id, last_seq=0)
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            logger.debug("register_lock_created", extra={"tenant_id": tenant_id})
            return row
        except IntegrityError:
            logger.debug("register_lock_race_retry", extra={"tenant_id": tenant_id})
            savepoint.rollback()
            self.session.expire_all()
            row = self._select_locked(tenant_id)
            if row is None:
                raise
            return row

    def next_seq(self, row: RegisterLockModel) -> int:
        """Increment and return the tenant's sequence on a locked row."""
        row.last_seq += 1
        self.session.flush()
        logger.debug(
            "ledger_seq_allocated",
            extra={"tenant_id": row.tenant_id, "seq": row.last_seq},
        )
        return row.last_seq
