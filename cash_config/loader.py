"""
Configuration Loader (``cash_config.loader``).

Responsibility
--------------
Loads YAML files, merges them over the packaged defaults and parses the
result into the frozen dataclasses of ``cash_config.schema``.  Runtime
callers go through ``cash_config.get_active_config()`` instead.

Invariants enforced
-------------------
* Every value is type- and range-checked; a bad value raises
  ``ConfigurationError`` naming the dotted key.
* Unknown sections and keys are rejected rather than ignored.
* ``compute_checksum`` is deterministic for equal data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from cash_config.schema import CashConfig, DatabaseConfig, LoggingConfig, RegisterConfig
from cash_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = {
    "database": {
        "url",
        "echo",
        "pool_size",
        "max_overflow",
        "pool_timeout",
        "lock_timeout_seconds",
    },
    "register": {"currency", "decimal_places", "business_timezone"},
    "logging": {"level"},
}

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` over ``base`` without mutating either."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = value
    return result


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _int(section: dict, key: str, minimum: int, maximum: int | None = None) -> int:
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(key, f"must be an integer, got {value!r}")
    if value < minimum or (maximum is not None and value > maximum):
        upper = f" and <= {maximum}" if maximum is not None else ""
        raise ConfigurationError(key, f"must be >= {minimum}{upper}, got {value}")
    return value


def _positive_number(section: dict, key: str) -> float:
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(key, f"must be a positive number, got {value!r}")
    return value


def _check_keys(data: dict[str, Any]) -> None:
    for name, section in data.items():
        if name not in _SECTIONS:
            raise ConfigurationError(name, "unknown section")
        if not isinstance(section, dict):
            raise ConfigurationError(name, "section must be a mapping")
        for key in section:
            if key not in _SECTIONS[name]:
                raise ConfigurationError(f"{name}.{key}", "unknown key")


def _parse_database(section: dict) -> DatabaseConfig:
    url = section["url"]
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("database.url", "must be a non-empty string")
    if not isinstance(section["echo"], bool):
        raise ConfigurationError("database.echo", "must be true or false")
    try:
        return DatabaseConfig(
            url=url.strip(),
            echo=section["echo"],
            pool_size=_int(section, "pool_size", 1),
            max_overflow=_int(section, "max_overflow", 0),
            pool_timeout=_int(section, "pool_timeout", 1),
            lock_timeout_seconds=_positive_number(section, "lock_timeout_seconds"),
        )
    except ConfigurationError as exc:
        raise ConfigurationError(f"database.{exc.key}", exc.reason) from None


def _parse_register(section: dict) -> RegisterConfig:
    currency = section["currency"]
    if not isinstance(currency, str) or not _CURRENCY_RE.match(currency):
        raise ConfigurationError(
            "register.currency", f"must be a 3-letter ISO 4217 code, got {currency!r}"
        )
    try:
        decimal_places = _int(section, "decimal_places", 0, 9)
    except ConfigurationError as exc:
        raise ConfigurationError("register.decimal_places", exc.reason) from None

    tz_name = section["business_timezone"]
    if not isinstance(tz_name, str) or not tz_name:
        raise ConfigurationError("register.business_timezone", "must be a timezone name")
    if tz_name.upper() != "UTC":
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigurationError(
                "register.business_timezone", f"unknown timezone {tz_name!r}"
            ) from None
    return RegisterConfig(
        currency=currency,
        decimal_places=decimal_places,
        business_timezone=tz_name,
    )


def _parse_logging(section: dict) -> LoggingConfig:
    level = section["level"]
    if not isinstance(level, str) or not isinstance(
        logging.getLevelName(level.upper()), int
    ):
        raise ConfigurationError("logging.level", f"unknown level {level!r}")
    return LoggingConfig(level=level.upper())


def parse_config(data: dict[str, Any]) -> CashConfig:
    """
    Validate merged configuration data into a CashConfig.

    ``data`` must already contain every key (merge over the defaults first).
    """
    _check_keys(data)
    for name, keys in _SECTIONS.items():
        missing = keys - set(data.get(name, {}))
        if missing:
            raise ConfigurationError(f"{name}.{sorted(missing)[0]}", "missing")

    return CashConfig(
        database=_parse_database(data["database"]),
        register=_parse_register(data["register"]),
        logging=_parse_logging(data["logging"]),
        checksum=compute_checksum(data),
    )


def load_config(path: Path | None = None, overrides: dict[str, Any] | None = None) -> CashConfig:
    """Defaults, then the file at ``path``, then ``overrides``, parsed."""
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge(data, load_yaml_file(path))
    if overrides:
        data = merge(data, overrides)
    return parse_config(data)
