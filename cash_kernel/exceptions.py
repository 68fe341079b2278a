"""
Typed Exception Hierarchy for the Cash Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers render failures as notifications, API responses and log records.
They must be able to tell an insufficient balance from a closed register
without parsing message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    result = facade.withdraw(tenant_id, "1300", "too much")
    if not result.is_success:
        toast(code=result.error_code, message=result.error_message)

    try:
        engine.execute(command)
    except InsufficientBalanceError as e:
        log.warning("short", extra={"requested": e.requested, "available": e.available})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CashKernelError (base)
    |
    +-- CommandError
    |   +-- InvalidAmountError
    |   +-- InvalidTransitionError
    |   +-- InsufficientBalanceError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- ImmutabilityViolationError
    +-- LedgerCorruptionError
    +-- SessionNotFoundError
    +-- InvalidDateRangeError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|------------------------------------------
Command      | INVALID_AMOUNT         | Non-numeric, non-finite, <= 0, too precise
             | INVALID_TRANSITION     | Command illegal in the current status
             | INSUFFICIENT_BALANCE   | Withdraw larger than the current balance
-------------|------------------------|------------------------------------------
Storage      | STORAGE_UNAVAILABLE    | Database fault or lock timeout
-------------|------------------------|------------------------------------------
Ledger       | IMMUTABILITY_VIOLATION | UPDATE/DELETE of a ledger entry
             | LEDGER_CORRUPTION      | Stored entries violate the state machine
-------------|------------------------|------------------------------------------
Query        | SESSION_NOT_FOUND      | No entries for tenant/session
             | INVALID_DATE_RANGE     | History range with start after end
-------------|------------------------|------------------------------------------
Config       | CONFIGURATION_ERROR    | Invalid configuration value

None of these are retried by the kernel. Retry policy belongs to the caller.
"""


class CashKernelError(Exception):
    """
    Base exception for all cash kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CASH_KERNEL_ERROR"


# Command exceptions


class CommandError(CashKernelError):
    """Base exception for rejected register commands."""

    code: str = "COMMAND_ERROR"


class InvalidAmountError(CommandError):
    """Amount is not a finite positive decimal within currency precision."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, raw_value: object, reason: str):
        self.raw_value = repr(raw_value)
        self.reason = reason
        super().__init__(f"Invalid amount {self.raw_value}: {reason}")


class InvalidTransitionError(CommandError):
    """Command is not allowed in the register's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, command: str, status: str):
        self.command = command
        self.status = status
        super().__init__(
            f"Cannot {command} while the cash register is {status}"
        )


class InsufficientBalanceError(CommandError):
    """Withdrawal exceeds the balance of the open session."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, requested, available):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Withdrawal of {requested} exceeds current balance {available}"
        )


# Storage exceptions


class StorageError(CashKernelError):
    """Base exception for durability-layer errors."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """
    The durability layer failed or did not answer in time.

    The triggering command is rolled back; no partial effect is visible.
    """

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


# Ledger integrity exceptions


class ImmutabilityViolationError(CashKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class LedgerCorruptionError(CashKernelError):
    """
    Stored entries cannot be folded by the state machine.

    Never raised for well-formed ledgers written through the kernel; it
    signals rows written around it.
    """

    code: str = "LEDGER_CORRUPTION"

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Ledger for session {session_id} is corrupt: {reason}")


# Query exceptions


class SessionNotFoundError(CashKernelError):
    """No ledger entries exist for the requested session."""

    code: str = "SESSION_NOT_FOUND"

    def __init__(self, tenant_id: str, session_id: str):
        self.tenant_id = tenant_id
        self.session_id = session_id
        super().__init__(
            f"Cash session {session_id} not found for tenant {tenant_id}"
        )


class InvalidDateRangeError(CashKernelError):
    """History range whose start falls after its end."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"Invalid date range: {start} is after {end}")


# Configuration exceptions


class ConfigurationError(CashKernelError):
    """A configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
