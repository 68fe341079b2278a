"""
Structured JSON logging for the cash kernel.

Every record under the ``cash_kernel`` logger is written as one JSON object
per line.  Command-scoped fields (correlation id, tenant, session, command,
actor) travel in context variables, so the facade binds them once and every
log line emitted while the command runs carries them, across threads and
async tasks alike.

Usage:
    configure_logging(level="INFO")
    log = get_logger("services.ledger_store")
    with LogContext.bind(tenant_id="acme", command="withdraw"):
        log.info("ledger_entry_appended", extra={"seq": 7})
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "cash_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "session_id",
    "command",
    "actor_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"cash_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _var(name: str) -> ContextVar[str | None]:
    try:
        return _context[name]
    except KeyError:
        raise TypeError(f"unknown log context field {name!r}") from None


class LogContext:
    """Command-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context.  None is skipped."""
        for name, value in fields.items():
            var = _var(name)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a block, then restore the old values."""
        tokens: list[tuple[ContextVar[str | None], Token]] = []
        for name, value in fields.items():
            var = _var(name)
            if value is not None:
                tokens.append((var, var.set(str(value))))
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else arrived through ``extra``
_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if hasattr(obj, "value"):  # enums
        return obj.value
    return repr(obj)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: ``ts``, ``level``, ``logger``, ``message``, the bound context
    fields, every ``extra`` field and, for exceptions, ``exc_type``,
    ``exc_message``, ``exc_code`` (kernel errors), one ``exc_<attr>`` per
    public exception attribute and ``traceback``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_json_default)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for attr, value in vars(exc).items():
            if not attr.startswith("_"):
                fields[f"exc_{attr}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``cash_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_installed: logging.Handler | None = None
_setup_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``cash_kernel`` logger.

    Only the first call has an effect until reset_logging().  ``level``
    accepts a number or a level name such as ``"DEBUG"``.  Records do not
    propagate to the root logger, so host applications keep their own
    handlers untouched.
    """
    global _installed
    with _setup_lock:
        if _installed is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        _installed = handler

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """
    Detach the handler configure_logging() attached and allow it to run
    again.  Handlers added by anything else stay.  For tests.
    """
    global _installed
    with _setup_lock:
        handler, _installed = _installed, None
    root = logging.getLogger(_LOGGER_PREFIX)
    if handler is not None:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
