"""
Module: cash_kernel.db.triggers
Responsibility: Loading, installing and removing the database triggers that
    make ledger_entries append-only (Layer 2 of 2; Layer 1 is the ORM
    listeners in db/immutability.py).
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Invariants enforced:
    - ledger_entries rows: no UPDATE, no DELETE, ever (PostgreSQL and SQLite).

Failure modes:
    - PostgreSQL RAISE / SQLite RAISE(ABORT) on violation, surfaced by
      SQLAlchemy as a DBAPIError subclass.
    - FileNotFoundError if the SQL file for the dialect is missing.
    - ValueError for dialects without trigger SQL.

Raw SQL, bulk statements and direct database access bypass the ORM
listeners; these triggers still refuse them.
"""

from pathlib import Path

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from cash_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

STATEMENT_SEPARATOR = "---"

TRIGGER_NAMES = (
    "trg_ledger_entry_no_update",
    "trg_ledger_entry_no_delete",
)

_SUPPORTED_DIALECTS = ("postgresql", "sqlite")


def _load_statements(filename: str) -> list[str]:
    """Split a SQL file into statements on separator lines."""
    content = (SQL_DIR / filename).read_text(encoding="utf-8")
    statements: list[str] = []
    current: list[str] = []
    for line in content.splitlines():
        if line.strip() == STATEMENT_SEPARATOR:
            statements.append("\n".join(current).strip())
            current = []
        else:
            current.append(line)
    statements.append("\n".join(current).strip())
    return [s for s in statements if s]


def _dialect_of(engine: Engine) -> str:
    dialect = engine.dialect.name
    if dialect not in _SUPPORTED_DIALECTS:
        raise ValueError(f"No immutability triggers for dialect {dialect!r}")
    return dialect


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the append-only triggers on ledger_entries.

    Preconditions: Tables must exist (call after create_all).
    Postconditions: Every trigger in TRIGGER_NAMES is installed.  Safe to
        call repeatedly.
    """
    dialect = _dialect_of(engine)
    statements = _load_statements(f"{dialect}_ledger_entries.sql")
    with engine.begin() as conn:
        for statement in statements:
            conn.exec_driver_sql(statement)
    logger.info(
        "immutability_triggers_installed",
        extra={"dialect": dialect, "triggers": list(TRIGGER_NAMES)},
    )


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the append-only triggers.

    WARNING: Only for test teardown.  Never leave a live ledger without them.
    """
    dialect = _dialect_of(engine)
    if not inspect(engine).has_table("ledger_entries"):
        return
    statements = _load_statements(f"{dialect}_drop.sql")
    with engine.begin() as conn:
        for statement in statements:
            conn.exec_driver_sql(statement)
    logger.warning("immutability_triggers_removed", extra={"dialect": dialect})
