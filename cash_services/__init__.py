"""
cash_services -- application surface of the cash register.

The facade is the only entrypoint callers need; everything below it lives
in cash_kernel.
"""

from cash_services.bootstrap import bootstrap
from cash_services.facade import (
    CashRegisterFacade,
    CommandResult,
    CommandStatus,
    TenantLockRegistry,
)
from cash_services.notifications import EventDispatcher, InMemorySink, NotificationSink

__all__ = [
    "CashRegisterFacade",
    "CommandResult",
    "CommandStatus",
    "EventDispatcher",
    "InMemorySink",
    "NotificationSink",
    "TenantLockRegistry",
    "bootstrap",
]
