"""
LedgerStore -- durable, append-only storage of ledger entries.

Responsibility:
    Appends immutable ledger entries and streams them back in replay order
    through LedgerSelector.  It is the only writer of ``ledger_entries``.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes inside the caller's
    transaction; never commits.

Invariants enforced:
    - Append-only: there is no update or delete method.  ORM listeners and
      database triggers refuse both.
    - Tenant scoping: every query filters on tenant_id.
    - Replay order: read_all() orders by (timestamp, seq), as defined in
      selectors/ledger_selector.py.

Failure modes:
    - StorageUnavailableError when the database fails during append
      (OperationalError, any other DBAPIError, pool TimeoutError).  The
      caller rolls the transaction back; nothing becomes visible.
"""

from datetime import datetime
from typing import Iterator
from uuid import UUID

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError
from sqlalchemy.orm import Session

from cash_kernel.domain.values import LedgerEntry
from cash_kernel.exceptions import StorageUnavailableError
from cash_kernel.logging_config import get_logger
from cash_kernel.models.ledger_entry import LedgerEntryModel
from cash_kernel.selectors.ledger_selector import LedgerSelector
from cash_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService):
    """
    Append and read ledger entries for one SQLAlchemy session.

    Contract:
        append() adds exactly one row and flushes.  Readers are lazy
        generators; each call issues a fresh query, so iteration can be
        restarted by calling again.  With ``decimal_places`` set, entries
        come back at the currency's scale rather than the column's.
    """

    def __init__(self, session: Session, *, decimal_places: int | None = None):
        super().__init__(session)
        self._reader = LedgerSelector(session, decimal_places=decimal_places)

    def append(self, entry: LedgerEntry) -> UUID:
        """
        Persist one entry.

        Args:
            entry: Fully stamped entry (id, seq, timestamp assigned).

        Returns:
            The entry id.

        Raises:
            StorageUnavailableError: If the database cannot take the write.
        """
        model = LedgerEntryModel(
            id=entry.id,
            tenant_id=entry.tenant_id,
            session_id=entry.session_id,
            seq=entry.seq,
            kind=entry.kind.value,
            amount=entry.amount,
            notes=entry.notes,
            timestamp=entry.timestamp,
            counted_amount=entry.counted_amount,
            actor_id=entry.actor_id,
        )
        try:
            self.session.add(model)
            self.session.flush()
        except (OperationalError, DBAPIError, TimeoutError) as exc:
            logger.error(
                "ledger_append_failed",
                extra={
                    "tenant_id": entry.tenant_id,
                    "seq": entry.seq,
                    "error_type": type(exc).__name__,
                },
            )
            raise StorageUnavailableError("append", str(exc)) from exc

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "tenant_id": entry.tenant_id,
                "session_id": str(entry.session_id),
                "seq": entry.seq,
                "kind": entry.kind.value,
                "amount": str(entry.amount),
            },
        )
        return entry.id

    def read_all(self, tenant_id: str, session_id: UUID) -> Iterator[LedgerEntry]:
        """All entries of a session in (timestamp, seq) order."""
        return self._reader.read_all(tenant_id, session_id)

    def latest_session_id(self, tenant_id: str) -> UUID | None:
        return self._reader.latest_session_id(tenant_id)

    def session_ids(self, tenant_id: str) -> list[UUID]:
        return self._reader.session_ids(tenant_id)

    def read_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
    ) -> Iterator[LedgerEntry]:
        """Entries of every session opened in ``[start, end)``."""
        return self._reader.read_range(tenant_id, start, end)
