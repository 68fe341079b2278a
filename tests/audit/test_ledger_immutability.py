"""
Append-only enforcement for ledger entries.

Layer 1: ORM listeners raise ImmutabilityViolationError.
Layer 2: database triggers refuse raw UPDATE and DELETE statements.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError

from cash_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from cash_kernel.db.triggers import TRIGGER_NAMES
from cash_kernel.exceptions import ImmutabilityViolationError
from cash_kernel.models.ledger_entry import LedgerEntryModel

TENANT = "acme"


@pytest.fixture
def stored_entry(facade, session):
    facade.open_session(TENANT, "100")
    entry = session.execute(select(LedgerEntryModel)).scalar_one()
    # Release the SQLite write lock taken by the read
    session.commit()
    return entry


class TestOrmLayer:
    def test_update_blocked(self, stored_entry, session, captured_logs):
        entry_id = str(stored_entry.id)
        stored_entry.amount = Decimal("1000000")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "LedgerEntry"
        assert exc_info.value.entity_id == entry_id
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_delete_blocked(self, stored_entry, session):
        session.delete(stored_entry)
        with pytest.raises(ImmutabilityViolationError, match="DELETE"):
            session.flush()

    def test_registration_is_idempotent(self, stored_entry, session):
        register_immutability_listeners()
        register_immutability_listeners()
        stored_entry.notes = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestDatabaseLayer:
    def test_triggers_installed(self, engine):
        with engine.connect() as conn:
            names = set(
                conn.execute(
                    text("SELECT name FROM sqlite_master WHERE type = 'trigger'")
                ).scalars()
            )
        assert set(TRIGGER_NAMES) <= names

    def test_raw_update_blocked(self, stored_entry, engine):
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            with engine.begin() as conn:
                conn.execute(text("UPDATE ledger_entries SET amount = 5"))

    def test_raw_delete_blocked(self, stored_entry, engine):
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            with engine.begin() as conn:
                conn.execute(text("DELETE FROM ledger_entries"))

    def test_orm_bypass_still_blocked(self, stored_entry, session):
        unregister_immutability_listeners()
        try:
            stored_entry.amount = Decimal("1")
            with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
                session.flush()
        finally:
            register_immutability_listeners()

    def test_ledger_unchanged_after_attempts(self, stored_entry, engine, facade):
        for statement in ("UPDATE ledger_entries SET amount = 5", "DELETE FROM ledger_entries"):
            with pytest.raises(DBAPIError):
                with engine.begin() as conn:
                    conn.execute(text(statement))
        assert facade.get_status(TENANT).balance == Decimal("100")

    def test_summary_cache_is_mutable(self, stored_entry, engine):
        with engine.begin() as conn:
            conn.execute(text("UPDATE cash_sessions SET balance = 0"))
