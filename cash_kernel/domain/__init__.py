"""
Domain layer - pure functional core of the cash register.

Nothing in this package performs I/O or imports SQLAlchemy sessions.
"""

from cash_kernel.domain.clock import Clock, DeterministicClock, SequentialClock, SystemClock
from cash_kernel.domain.projector import project, project_as_of, summarize
from cash_kernel.domain.state_machine import (
    CloseSession,
    Command,
    OpenSession,
    ProposedEntry,
    SupplyCash,
    WithdrawCash,
    decide,
)
from cash_kernel.domain.values import (
    EntryKind,
    LedgerEntry,
    Operation,
    SessionProjection,
    SessionStatus,
    SessionSummary,
    parse_amount,
)

__all__ = [
    "Clock",
    "CloseSession",
    "Command",
    "DeterministicClock",
    "EntryKind",
    "LedgerEntry",
    "OpenSession",
    "Operation",
    "ProposedEntry",
    "SequentialClock",
    "SessionProjection",
    "SessionStatus",
    "SessionSummary",
    "SupplyCash",
    "SystemClock",
    "WithdrawCash",
    "decide",
    "parse_amount",
    "project",
    "project_as_of",
    "summarize",
]
