"""
Module: cash_kernel.models.register_lock
Responsibility: One row per tenant used as the database-level mutex for
    register commands and as the tenant's ledger sequence counter.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - tenant_id is UNIQUE; commands lock this row with SELECT ... FOR UPDATE
      before reading state, so concurrent commands for one tenant serialize.
    - last_seq only grows; it is the last seq handed to a ledger entry.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from cash_kernel.db.base import Base
from cash_kernel.db.types import TENANT_ID_LENGTH


class RegisterLockModel(Base):
    """Per-tenant lock and sequence counter."""

    __tablename__ = "register_locks"

    tenant_id: Mapped[str] = mapped_column(
        String(TENANT_ID_LENGTH),
        nullable=False,
        unique=True,
    )

    last_seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
