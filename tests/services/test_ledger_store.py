"""
Tests for LedgerStore: append, ordered streaming reads, tenant scoping and
storage failure translation.
"""

import dataclasses
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from cash_kernel.domain.values import EntryKind
from cash_kernel.exceptions import StorageUnavailableError
from cash_kernel.models.ledger_entry import LedgerEntryModel
from cash_kernel.selectors.session_selector import SessionSelector
from cash_kernel.services.ledger_store import LedgerStore

TENANT = "acme"


@pytest.fixture
def store(session):
    return LedgerStore(session)


class TestAppend:
    def test_returns_entry_id(self, store, build_entries):
        entry = build_entries([("open", "500.00")])[0]
        assert store.append(entry) == entry.id

    def test_round_trips_fields(self, store, build_entries):
        entry = build_entries([("open", "500.25")])[0]
        store.append(entry)
        [loaded] = list(store.read_all(TENANT, entry.session_id))
        assert loaded.id == entry.id
        assert loaded.kind is EntryKind.OPEN
        assert loaded.amount == Decimal("500.25")
        assert loaded.timestamp == entry.timestamp
        assert loaded.timestamp.tzinfo is not None
        assert loaded.seq == entry.seq

    def test_database_fault_becomes_storage_unavailable(self, store, session, build_entries):
        entry = build_entries([("open", "10")])[0]
        fault = OperationalError("INSERT INTO ledger_entries", {}, Exception("disk I/O error"))
        with patch.object(session, "flush", side_effect=fault):
            with pytest.raises(StorageUnavailableError) as exc_info:
                store.append(entry)
        assert exc_info.value.operation == "append"
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"

    def test_duplicate_tenant_seq_refused(self, store, session, build_entries):
        first = build_entries([("open", "10")])[0]
        store.append(first)
        clash = build_entries([("open", "20")])[0]
        with pytest.raises(StorageUnavailableError):
            store.append(clash)


class TestReadAll:
    def test_ordered_by_timestamp_then_seq(self, store, build_entries):
        entries = build_entries([("open", "10"), ("supply", "5"), ("withdraw", "3")])
        for entry in reversed(entries):
            store.append(entry)
        loaded = list(store.read_all(TENANT, entries[0].session_id))
        assert [e.seq for e in loaded] == [1, 2, 3]

    def test_restartable(self, store, build_entries):
        entries = build_entries([("open", "10"), ("supply", "5")])
        for entry in entries:
            store.append(entry)
        session_id = entries[0].session_id
        assert list(store.read_all(TENANT, session_id)) == list(store.read_all(TENANT, session_id))

    def test_lazy_until_iterated(self, store, build_entries):
        entries = build_entries([("open", "10"), ("supply", "5")])
        store.append(entries[0])
        reader = store.read_all(TENANT, entries[0].session_id)
        store.append(entries[1])
        assert len(list(reader)) == 2

    def test_tenant_scoped(self, store, build_entries):
        mine = build_entries([("open", "10")])
        theirs = build_entries([("open", "99")], tenant_id="globex", session_id=mine[0].session_id)
        store.append(mine[0])
        store.append(theirs[0])
        loaded = list(store.read_all(TENANT, mine[0].session_id))
        assert [e.amount for e in loaded] == [Decimal("10")]

    def test_unknown_session_is_empty(self, store):
        assert list(store.read_all(TENANT, uuid4())) == []


class TestSessionLookup:
    def test_latest_session_id(self, store, build_entries, session):
        first = build_entries([("open", "10"), ("close", "0")])
        second = build_entries(
            [("open", "20")], first_seq=3, start=first[-1].timestamp + timedelta(hours=1)
        )
        for entry in first + second:
            store.append(entry)
        assert store.latest_session_id(TENANT) == second[0].session_id
        assert store.session_ids(TENANT) == [first[0].session_id, second[0].session_id]

    def test_no_sessions(self, store):
        assert store.latest_session_id(TENANT) is None
        assert store.session_ids(TENANT) == []

    def test_read_range(self, store, build_entries, session):
        day1 = build_entries([("open", "10"), ("supply", "1"), ("close", "0")])
        day2 = build_entries(
            [("open", "20"), ("close", "0")],
            first_seq=4,
            start=day1[0].timestamp + timedelta(days=1),
        )
        for entry in day1 + day2:
            store.append(entry)

        start = day1[0].timestamp - timedelta(hours=1)
        loaded = list(store.read_range(TENANT, start, start + timedelta(days=1)))
        assert [e.session_id for e in loaded] == [day1[0].session_id] * 3

        everything = list(store.read_range(TENANT, start, start + timedelta(days=3)))
        assert [e.seq for e in everything] == [1, 2, 3, 4, 5]
        assert session.scalar(select(func.count()).select_from(LedgerEntryModel)) == 5


class TestCurrencyScale:
    def test_entries_at_currency_scale(self, session, build_entries):
        store = LedgerStore(session, decimal_places=2)
        entries = build_entries([("open", "10"), ("supply", "0.5"), ("close", "0")])
        for entry in entries:
            store.append(entry)
        loaded = list(store.read_all(TENANT, entries[0].session_id))
        assert [str(e.amount) for e in loaded] == ["10.00", "0.50", "0.00"]

    def test_counted_amount_at_currency_scale(self, session, build_entries):
        store = LedgerStore(session, decimal_places=2)
        opened, closing = build_entries([("open", "550"), ("close", "0")])
        store.append(opened)
        store.append(dataclasses.replace(closing, counted_amount=Decimal("549.5")))
        [_, closed] = list(store.read_all(TENANT, opened.session_id))
        assert str(closed.counted_amount) == "549.50"


class TestSharedReadOrder:
    def test_selector_reads_in_store_order(self, store, session, build_entries):
        [early] = build_entries([("supply", "5")], first_seq=2)
        [late] = build_entries(
            [("open", "10")],
            session_id=early.session_id,
            start=early.timestamp + timedelta(seconds=30),
        )
        store.append(late)
        store.append(early)

        from_store = list(store.read_all(TENANT, early.session_id))
        assert [e.seq for e in from_store] == [2, 1]
        assert SessionSelector(session).entries(TENANT, early.session_id) == from_store

    def test_selector_latest_session_matches_store(self, store, session, build_entries):
        first = build_entries([("open", "10"), ("close", "0")])
        second = build_entries(
            [("open", "20")], first_seq=3, start=first[-1].timestamp + timedelta(hours=1)
        )
        for entry in first + second:
            store.append(entry)
        assert SessionSelector(session).latest_session_id(TENANT) == second[0].session_id
        assert store.latest_session_id(TENANT) == second[0].session_id
