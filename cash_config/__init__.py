"""
cash_config -- single public entrypoint for register configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.

Architecture position:
    Configuration sits above ``cash_kernel`` and below ``cash_services``.
    The kernel MUST NEVER import from ``cash_config``; services pass the
    values it needs (precision, timezone, timeouts) as arguments.

Environment:
    CASH_REGISTER_CONFIG  Path of a YAML file merged over the defaults.
    DATABASE_URL          Overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ConfigurationError`` -- a value fails validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cash_config.loader import load_config
from cash_config.schema import CashConfig, DatabaseConfig, LoggingConfig, RegisterConfig

_logger = logging.getLogger("cash_kernel.config")

CONFIG_PATH_ENV = "CASH_REGISTER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> CashConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file merged over the packaged defaults.  Falls
            back to ``$CASH_REGISTER_CONFIG``; with neither, the defaults
            are used as-is.

    Returns:
        Frozen CashConfig.  ``$DATABASE_URL``, when set, replaces
        ``database.url``.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_PATH_ENV) or None
    path = Path(config_path) if config_path is not None else None

    overrides = {}
    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        overrides["database"] = {"url": database_url}

    config = load_config(path, overrides)

    _logger.info(
        "CASH_CONFIG_TRACE",
        extra={
            "trace_type": "CASH_CONFIG_TRACE",
            "config_path": str(path) if path else None,
            "checksum": config.checksum,
            "dialect": config.database.url.split(":", 1)[0],
            "currency": config.register.currency,
            "business_timezone": config.register.business_timezone,
        },
    )
    return config


__all__ = [
    "CashConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "RegisterConfig",
    "get_active_config",
]
