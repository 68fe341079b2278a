"""Tests for structured logging (cash_kernel/logging_config.py)."""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from cash_kernel.domain.values import EntryKind
from cash_kernel.exceptions import InsufficientBalanceError, InvalidTransitionError
from cash_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Start unconfigured; afterwards put the suite's DEBUG setup back."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def log_stream():
    """Configure logging into a StringIO and return a reader of parsed lines."""
    stream = StringIO()

    def _configure(level=logging.INFO):
        configure_logging(stream=stream, level=level)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    _configure.records = _records
    return _configure


class TestRecordShape:
    def test_core_keys(self, log_stream):
        log_stream()
        get_logger("services.ledger_store").info("ledger_entry_appended")

        [record] = log_stream.records()
        assert record["level"] == "INFO"
        assert record["message"] == "ledger_entry_appended"
        assert record["logger"] == "cash_kernel.services.ledger_store"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_are_typed_for_json(self, log_stream):
        log_stream()
        entry_id = uuid4()
        get_logger("test").info(
            "appended",
            extra={"entry_id": entry_id, "amount": Decimal("150.50"), "seq": 3, "kind": EntryKind.WITHDRAW},
        )

        [record] = log_stream.records()
        assert record["entry_id"] == str(entry_id)
        assert record["amount"] == "150.50"
        assert record["seq"] == 3
        assert record["kind"] == "withdraw"

    def test_level_filtering(self, log_stream):
        log_stream()
        log = get_logger("test")
        log.debug("hidden")
        log.warning("shown")
        assert [r["message"] for r in log_stream.records()] == ["shown"]

    def test_level_name_accepted(self, log_stream):
        log_stream(level="debug")
        get_logger("test").debug("visible")
        assert [r["message"] for r in log_stream.records()] == ["visible"]


class TestExceptions:
    def test_plain_exception(self, log_stream):
        log_stream()
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").exception("failed")

        [record] = log_stream.records()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_error_attributes(self, log_stream):
        log_stream()
        try:
            raise InsufficientBalanceError(Decimal("600"), Decimal("300"))
        except InsufficientBalanceError:
            get_logger("test").error("withdraw_failed", exc_info=True)

        [record] = log_stream.records()
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_requested"] == "600"
        assert record["exc_available"] == "300"

    def test_transition_error_attributes(self, log_stream):
        log_stream()
        try:
            raise InvalidTransitionError(command="supply", status="closed")
        except InvalidTransitionError:
            get_logger("test").warning("rejected", exc_info=True)

        [record] = log_stream.records()
        assert record["exc_command"] == "supply"
        assert record["exc_status"] == "closed"


class TestLogContext:
    def test_context_fields_on_records(self, log_stream):
        log_stream()
        LogContext.set(correlation_id="c-1", tenant_id="acme")
        get_logger("test").info("msg")

        [record] = log_stream.records()
        assert record["correlation_id"] == "c-1"
        assert record["tenant_id"] == "acme"

    def test_no_context_when_empty(self, log_stream):
        log_stream()
        get_logger("test").info("bare")
        [record] = log_stream.records()
        assert "correlation_id" not in record
        assert "tenant_id" not in record

    def test_bind_restores_previous_values(self):
        LogContext.set(tenant_id="outer")
        with LogContext.bind(tenant_id="inner", command="open"):
            assert LogContext.get_all() == {"tenant_id": "inner", "command": "open"}
        assert LogContext.get_all() == {"tenant_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(command="withdraw"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_bind_skips_none_and_stringifies(self):
        session_id = uuid4()
        with LogContext.bind(session_id=session_id, actor_id=None):
            assert LogContext.get_all() == {"session_id": str(session_id)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="x")

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="op-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_threads_do_not_share_context(self):
        LogContext.set(tenant_id="acme")
        seen = {}

        def worker():
            seen["before"] = LogContext.get_all()
            LogContext.set(tenant_id="globex")
            seen["after"] = LogContext.get_all()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == {"before": {}, "after": {"tenant_id": "globex"}}
        assert LogContext.get_all() == {"tenant_id": "acme"}


def _json_handlers() -> list[logging.Handler]:
    # pytest's log capture hangs its own handlers on this logger too
    return [
        h for h in logging.getLogger("cash_kernel").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


class TestConfigureLogging:
    def test_idempotent(self):
        first = StringIO()
        configure_logging(stream=first)
        configure_logging(stream=StringIO())
        [handler] = _json_handlers()
        assert handler.stream is first

    def test_does_not_propagate_to_root(self, log_stream):
        log_stream()
        assert logging.getLogger("cash_kernel").propagate is False

    def test_custom_handler_gets_json_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_children_inherit_configuration(self, log_stream):
        log_stream(level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")
        [record] = log_stream.records()
        assert record["logger"] == "cash_kernel.deep.nested.module"

    def test_reset_detaches_handlers(self, log_stream):
        log_stream()
        reset_logging()
        assert _json_handlers() == []

    def test_reset_leaves_foreign_handlers(self, log_stream):
        foreign = logging.NullHandler()
        logger = logging.getLogger("cash_kernel")
        logger.addHandler(foreign)
        try:
            log_stream()
            reset_logging()
            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)
