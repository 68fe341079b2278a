"""
Observability hooks for register commands.

Emits structured log events for metrics and dashboards:
- command_accepted: a command appended its entry (with duration_ms).
- command_rejected: a command failed, with error_code for aggregation.

All events carry a consistent ``observability_event`` field and stable
extra fields so log aggregators can parse them and build metrics.

Usage:
    from cash_services.observability import log_command_accepted
    log_command_accepted(command="withdraw", tenant_id="acme", duration_ms=3.2)
"""

from __future__ import annotations

from typing import Any

from cash_kernel.logging_config import get_logger

logger = get_logger("services.observability")

EVENT_COMMAND_ACCEPTED = "command_accepted"
EVENT_COMMAND_REJECTED = "command_rejected"


def log_command_accepted(
    *,
    command: str,
    tenant_id: str,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log a command that appended its ledger entry and committed."""
    payload: dict[str, Any] = {
        "observability_event": EVENT_COMMAND_ACCEPTED,
        "command": command,
        "tenant_id": tenant_id,
        **extra,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    logger.info(EVENT_COMMAND_ACCEPTED, extra=payload)


def log_command_rejected(
    *,
    command: str,
    tenant_id: str,
    error_code: str,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """
    Log a command that was rejected and left the ledger untouched.

    Storage failures are logged at ERROR, business rejections at WARNING.
    """
    payload: dict[str, Any] = {
        "observability_event": EVENT_COMMAND_REJECTED,
        "command": command,
        "tenant_id": tenant_id,
        "error_code": error_code,
        **extra,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if error_code == "STORAGE_UNAVAILABLE":
        logger.error(EVENT_COMMAND_REJECTED, extra=payload)
    else:
        logger.warning(EVENT_COMMAND_REJECTED, extra=payload)
