"""Database layer - engine, declarative base, types and append-only enforcement."""

from cash_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from cash_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from cash_kernel.db.types import round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "round_money",
]
