"""
Process start-up: logging, engine, schema and the facade, from one config.
"""

from __future__ import annotations

from sqlalchemy.exc import ArgumentError, DBAPIError, OperationalError

from cash_config import CashConfig, get_active_config
from cash_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from cash_kernel.db.immutability import register_immutability_listeners
from cash_kernel.domain.clock import Clock
from cash_kernel.exceptions import ConfigurationError, StorageUnavailableError
from cash_kernel.logging_config import configure_logging, get_logger
from cash_services.facade import CashRegisterFacade
from cash_services.notifications import EventDispatcher

logger = get_logger("services.bootstrap")


def bootstrap(
    config: CashConfig | None = None,
    *,
    clock: Clock | None = None,
    dispatcher: EventDispatcher | None = None,
    create_schema: bool = True,
) -> CashRegisterFacade:
    """
    Initialize the kernel and return a ready facade.

    Args:
        config: Effective configuration; defaults to get_active_config().
        clock: Time source; defaults to SystemClock.
        dispatcher: Event dispatcher with the caller's sinks.
        create_schema: Create missing tables and install triggers.

    Raises:
        ConfigurationError: database.url names no usable dialect or driver.
        StorageUnavailableError: The database cannot be reached or the
            schema cannot be created.  The engine is released first.
    """
    config = config or get_active_config()
    configure_logging(level=config.logging.level)

    db = config.database
    try:
        engine = init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
        )
        if create_schema:
            create_tables(engine)
    except ArgumentError as exc:
        raise ConfigurationError("database.url", str(exc)) from exc
    except (OperationalError, DBAPIError, TimeoutError) as exc:
        reset_engine()
        logger.error("bootstrap_failed", exc_info=True)
        raise StorageUnavailableError("bootstrap", str(exc)) from exc
    register_immutability_listeners()

    logger.info(
        "cash_register_ready",
        extra={"config_checksum": config.checksum, "dialect": engine.dialect.name},
    )
    return CashRegisterFacade(
        get_session_factory(),
        config,
        clock=clock,
        dispatcher=dispatcher,
    )
