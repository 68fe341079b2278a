"""
Property-based tests for the register laws.

Random command sequences are applied both to a plain reference model
(status + balance) and to the real guards and projector.  The laws:

- The balance always equals the fold of the ledger and is never negative.
- A withdrawal above the balance is always rejected, and nothing is written.
- At most one session is open, and it is always the latest one.
- Projecting the same entries twice, or in any order, gives the same state.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from cash_kernel.domain.projector import project, project_as_of, signed_amount
from cash_kernel.domain.state_machine import (
    CloseSession,
    OpenSession,
    SupplyCash,
    WithdrawCash,
    decide,
)
from cash_kernel.domain.values import (
    ZERO,
    EntryKind,
    LedgerEntry,
    SessionProjection,
    SessionStatus,
    parse_amount,
)
from cash_kernel.exceptions import (
    CommandError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTransitionError,
)

TENANT = "acme"
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

commands = st.one_of(
    st.builds(lambda a: OpenSession(TENANT, a), amounts),
    st.builds(lambda a: SupplyCash(TENANT, a), amounts),
    st.builds(lambda a: WithdrawCash(TENANT, a), amounts),
    st.builds(lambda: CloseSession(TENANT)),
)


class InMemoryRegister:
    """The session engine's command path with a list instead of a database."""

    def __init__(self):
        self.ledger: list[LedgerEntry] = []
        self.seq = 0

    def current(self) -> tuple[SessionProjection, list[LedgerEntry]]:
        if not self.ledger:
            return SessionProjection.empty(TENANT), []
        latest = self.ledger[-1].session_id
        entries = [e for e in self.ledger if e.session_id == latest]
        return project(entries, tenant_id=TENANT), entries

    def execute(self, command) -> SessionProjection:
        projection, entries = self.current()
        proposed = decide(command, projection)
        session_id = uuid4() if proposed.kind is EntryKind.OPEN else projection.session_id
        self.seq += 1
        entry = LedgerEntry(
            id=uuid4(),
            tenant_id=TENANT,
            session_id=session_id,
            seq=self.seq,
            kind=proposed.kind,
            amount=proposed.amount,
            timestamp=T0 + timedelta(seconds=self.seq),
        )
        self.ledger.append(entry)
        if proposed.kind is EntryKind.OPEN:
            entries = []
        return project(entries + [entry], tenant_id=TENANT)


class TestRegisterLaws:
    @given(st.lists(commands, max_size=40))
    @settings(max_examples=200, deadline=None)
    def test_matches_reference_model(self, script):
        register = InMemoryRegister()
        status, balance = SessionStatus.CLOSED, ZERO

        for command in script:
            before = len(register.ledger)
            try:
                projection = register.execute(command)
            except InvalidTransitionError:
                legal = (status is SessionStatus.CLOSED) == (command.kind is EntryKind.OPEN)
                assert not legal
                assert len(register.ledger) == before
                continue
            except InsufficientBalanceError:
                assert command.amount > balance
                assert len(register.ledger) == before
                continue

            if command.kind is EntryKind.OPEN:
                status, balance = SessionStatus.OPEN, command.amount
            elif command.kind is EntryKind.SUPPLY:
                balance += command.amount
            elif command.kind is EntryKind.WITHDRAW:
                assert command.amount <= balance
                balance -= command.amount
            else:
                status = SessionStatus.CLOSED

            assert projection.status is status
            assert projection.balance == balance
            assert projection.balance >= 0

    @given(st.lists(commands, max_size=40))
    @settings(max_examples=100, deadline=None)
    def test_at_most_one_open_session(self, script):
        register = InMemoryRegister()
        for command in script:
            try:
                register.execute(command)
            except CommandError:
                pass

        open_sessions = set()
        for entry in register.ledger:
            if entry.kind is EntryKind.OPEN:
                open_sessions.add(entry.session_id)
            elif entry.kind is EntryKind.CLOSE:
                open_sessions.discard(entry.session_id)
        assert len(open_sessions) <= 1
        if open_sessions:
            assert open_sessions == {register.ledger[-1].session_id}

    @given(st.lists(commands, max_size=30), st.randoms(use_true_random=False))
    @settings(max_examples=100, deadline=None)
    def test_projection_is_order_independent_and_idempotent(self, script, rnd):
        register = InMemoryRegister()
        for command in script:
            try:
                register.execute(command)
            except CommandError:
                pass
        _, entries = register.current()
        if not entries:
            return

        shuffled = entries[:]
        rnd.shuffle(shuffled)
        assert project(shuffled) == project(entries) == project(entries)
        assert project(entries).balance == sum(signed_amount(e) for e in entries)

    @given(st.lists(amounts, min_size=1, max_size=20), st.integers(min_value=0, max_value=25))
    @settings(max_examples=100, deadline=None)
    def test_prefix_projection_matches_replay(self, supplies, n):
        register = InMemoryRegister()
        register.execute(OpenSession(TENANT, "1.00"))
        for amount in supplies:
            register.execute(SupplyCash(TENANT, amount))

        prefix = project_as_of(register.ledger, n)
        expected = sum(e.amount for e in register.ledger[:n])
        assert prefix.balance == expected
        assert prefix.entry_count == min(n, len(register.ledger))


class TestAmountParsing:
    @given(amounts)
    def test_valid_amounts_survive(self, amount):
        assert parse_amount(amount) == amount
        assert parse_amount(str(amount)) == amount

    @given(st.decimals(max_value=Decimal("0"), allow_nan=False, allow_infinity=False))
    def test_non_positive_rejected(self, amount):
        with pytest.raises(InvalidAmountError):
            parse_amount(amount)

    @given(st.text(alphabet="abcxyz!@# ", max_size=10))
    def test_garbage_text_rejected(self, raw):
        with pytest.raises(InvalidAmountError):
            parse_amount(raw)


@pytest.mark.slow_locks
class TestFacadeLaws:
    """The same law against the database-backed facade, with fewer examples."""

    @given(st.lists(commands, max_size=12))
    @settings(
        max_examples=15,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_live_projection_equals_ledger_replay(self, facade, script):
        # Each example gets its own tenant; the database is shared
        tenant = f"fuzz-{uuid4().hex[:12]}"
        handlers = {
            EntryKind.OPEN: lambda c: facade.open_session(tenant, c.amount),
            EntryKind.SUPPLY: lambda c: facade.supply(tenant, c.amount),
            EntryKind.WITHDRAW: lambda c: facade.withdraw(tenant, c.amount),
            EntryKind.CLOSE: lambda c: facade.close_session(tenant),
        }

        last = None
        for command in script:
            result = handlers[command.kind](command)
            assert result.error_code != "STORAGE_UNAVAILABLE"
            if result.is_success:
                last = result.projection

        status = facade.get_status(tenant)
        if last is None:
            assert status.status is SessionStatus.CLOSED
            assert status.balance == ZERO
            return
        assert status == last
        replayed = project(facade.get_entries(tenant, last.session_id))
        assert replayed == status
