"""
Pytest fixtures for the cash register test suite.

Provides:
- A fresh SQLite database file per test, with tables, triggers and the
  ORM immutability listeners installed
- A deterministic clock and a facade wired to an in-memory event sink
- Structured log capture
- A builder for in-memory ledger entries (domain tests)
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from cash_config import CashConfig, DatabaseConfig, LoggingConfig, RegisterConfig
from cash_kernel.db.engine import build_engine, create_tables
from cash_kernel.db.immutability import register_immutability_listeners
from cash_kernel.domain.clock import DeterministicClock
from cash_kernel.domain.values import EntryKind, LedgerEntry
from cash_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from cash_services.facade import CashRegisterFacade
from cash_services.notifications import EventDispatcher, InMemorySink

TENANT = "acme"
OTHER_TENANT = "globex"

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture cash_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, facade):
            facade.open_session("acme", "100")
            logs = captured_logs()
            assert any(r["message"] == "command_accepted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("cash_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cash_register.db'}"


@pytest.fixture
def engine(database_url):
    engine = build_engine(database_url, pool_timeout=10)
    create_tables(engine)
    register_immutability_listeners()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A session for direct kernel tests.  Rolled back after the test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(T0)


@pytest.fixture
def cash_config(database_url):
    return CashConfig(
        database=DatabaseConfig(url=database_url, lock_timeout_seconds=10),
        register=RegisterConfig(currency="BRL", decimal_places=2, business_timezone="UTC"),
        logging=LoggingConfig(level="DEBUG"),
    )


@pytest.fixture
def event_sink():
    return InMemorySink()


@pytest.fixture
def make_facade(session_factory, cash_config, deterministic_clock, event_sink):
    """Factory for facades; keyword arguments override the defaults."""

    def _make(**overrides) -> CashRegisterFacade:
        return CashRegisterFacade(
            overrides.pop("session_factory", session_factory),
            overrides.pop("config", cash_config),
            clock=overrides.pop("clock", deterministic_clock),
            dispatcher=overrides.pop("dispatcher", EventDispatcher([event_sink])),
            **overrides,
        )

    return _make


@pytest.fixture
def facade(make_facade):
    return make_facade()


# =============================================================================
# Domain helpers
# =============================================================================


@pytest.fixture
def build_entries():
    """
    Build one session's entries from (kind, amount) steps.

    Each step is one second after the previous and gets the next seq.
    """

    def _build(steps, *, tenant_id=TENANT, session_id=None, start=T0, first_seq=1):
        session_id = session_id or uuid4()
        entries = []
        for i, (kind, amount) in enumerate(steps):
            entries.append(
                LedgerEntry(
                    id=uuid4(),
                    tenant_id=tenant_id,
                    session_id=session_id,
                    seq=first_seq + i,
                    kind=EntryKind(kind),
                    amount=Decimal(str(amount)),
                    timestamp=start + timedelta(seconds=i),
                )
            )
        return entries

    return _build
