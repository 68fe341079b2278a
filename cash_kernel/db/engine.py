"""
Module: cash_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/triggers.py.  MUST NOT import from services/, selectors/ or domain/
    (create_tables imports models/ so metadata is complete).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (FOR UPDATE on the tenant lock row) where serialization is needed.
    - SQLite (local use and tests) opens write transactions with
      BEGIN IMMEDIATE so writers queue on the database lock instead of
      failing on lock upgrade.  Read-only scopes use a deferred BEGIN and
      so run alongside each other and alongside a pending writer.
    - Connection waits are bounded by pool_timeout; nothing blocks forever.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - OperationalError on unreachable database (callers translate to
      StorageUnavailableError).
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from cash_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Connection execution option marking a transaction that never writes
READ_ONLY_OPTION = "cash_kernel_read_only"

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Take over transaction begin from pysqlite.  Writers begin IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for PostgreSQL or SQLite without touching module state.

    Args:
        database_url: SQLAlchemy URL (postgresql://... or sqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use (PostgreSQL).
        pool_timeout: Seconds to wait for a pooled connection; for SQLite,
            the busy timeout on the database lock.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    if _is_sqlite_url(database_url):
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": pool_timeout},
            poolclass=StaticPool if in_memory else None,
        )
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, **kwargs) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Second call overwrites the first; call reset_engine() in between to
    release pooled connections.

    Args:
        database_url: SQLAlchemy URL.
        **kwargs: Passed through to build_engine().

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, **kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "echo": kwargs.get("echo", False),
        },
    )
    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    return get_session_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Each thread needs its own session; share the factory, not sessions.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
    *,
    read_only: bool = False,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit the session is committed and closed.  On exception it is
    rolled back and closed, and the exception is re-raised.  ``read_only``
    scopes must not write; on SQLite they take no write lock.

    Usage:
        with session_scope() as session:
            session.add(entity)
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started", extra={"read_only": read_only})
    try:
        if read_only:
            session.connection(execution_options={READ_ONLY_OPTION: True})
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None, install_triggers: bool = True) -> None:
    """
    Create all kernel tables and, optionally, the append-only triggers.

    Args:
        engine: Engine to use.  Defaults to the module-level engine.
        install_triggers: Install database-level immutability triggers.
    """
    from cash_kernel.db.base import Base
    import cash_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    engine = engine or get_engine()
    Base.metadata.create_all(engine)

    if install_triggers:
        from cash_kernel.db.triggers import install_immutability_triggers

        install_immutability_triggers(engine)

    logger.info(
        "tables_created",
        extra={"tables": sorted(Base.metadata.tables), "triggers": install_triggers},
    )


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from cash_kernel.db.base import Base
    from cash_kernel.db.triggers import uninstall_immutability_triggers
    import cash_kernel.models  # noqa: F401

    engine = engine or get_engine()
    uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory. Useful for test cleanup."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
