"""
Configuration schema.

Frozen dataclasses produced by ``cash_config.loader.parse_config``.  They
hold validated values only; nothing here reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection and locking settings."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class RegisterConfig:
    """Currency precision and the timezone that defines a business day."""

    currency: str = "BRL"
    decimal_places: int = 2
    business_timezone: str = "UTC"

    @property
    def tzinfo(self) -> tzinfo:
        if self.business_timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.business_timezone)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class CashConfig:
    """Effective configuration of a cash-register deployment."""

    database: DatabaseConfig
    register: RegisterConfig = field(default_factory=RegisterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
