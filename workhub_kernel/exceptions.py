"""
Typed Exception Hierarchy for the WorkHub Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger operations must tell apart four kinds of outcome:

  1. The request itself is malformed          -> InputError
  2. The acting identity may not do this      -> AuthorizationError
  3. Stored data is missing or corrupt        -> DataError
  4. A routine business rule said "not now"   -> plain False / None return

Only the first three are exceptions. Insufficient funds, a full campaign or
a work item that is no longer pending are expected outcomes and are
reported through the return value, never raised.

Every exception carries a class-level ``code`` (machine-readable, API-safe)
and keeps its context as attributes instead of baking it into the message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkhubKernelError (base)
    |
    +-- InputError
    |   +-- InvalidInputError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |
    +-- DataError
    |   +-- EntityNotFoundError
    |   +-- DataIntegrityError
    |   +-- RequestMismatchError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- LedgerOperationError
    |
    +-- CompensationFailedError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_INPUT               | Argument missing, wrong type, out of range
Authorization   | UNAUTHORIZED                | Acting identity lacks permission
Data            | ENTITY_NOT_FOUND            | Referenced document does not exist
                | DATA_INTEGRITY              | Stored document fails its validator
                | REQUEST_MISMATCH            | Money request differs from caller's view
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Transaction retries exhausted
Ledger          | LEDGER_OPERATION_FAILED     | Store/network failure inside an operation
Compensation    | COMPENSATION_FAILED         | A compensating write itself failed
Configuration   | INVALID_CONFIGURATION       | Config file has an invalid value
"""

from __future__ import annotations

from typing import Any


class WorkhubKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKHUB_KERNEL_ERROR"


# Input errors


class InputError(WorkhubKernelError):
    """Base exception for malformed caller input."""

    code: str = "INPUT_ERROR"


class InvalidInputError(InputError):
    """An argument is missing, has the wrong type, or is out of range."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str, value: Any = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


# Authorization errors


class AuthorizationError(WorkhubKernelError):
    """Base exception for permission failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """The acting identity may not operate on the target's resources."""

    code: str = "UNAUTHORIZED"

    def __init__(self, acting_id: str, target_id: str, action: str):
        self.acting_id = acting_id
        self.target_id = target_id
        self.action = action
        super().__init__(f"Unauthorized: {acting_id} may not {action} for {target_id}")


# Data errors


class DataError(WorkhubKernelError):
    """Base exception for missing or structurally invalid stored data."""

    code: str = "DATA_ERROR"


class EntityNotFoundError(DataError):
    """A referenced document does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, path: str):
        self.entity_type = entity_type
        self.path = path
        super().__init__(f"{entity_type} does not exist at {path}")


class DataIntegrityError(DataError):
    """A stored document failed its validator on read or after commit."""

    code: str = "DATA_INTEGRITY"

    def __init__(self, entity_type: str, path: str, violations: tuple[str, ...] = ()):
        self.entity_type = entity_type
        self.path = path
        self.violations = tuple(violations)
        detail = f": {', '.join(self.violations)}" if self.violations else ""
        super().__init__(f"Invalid {entity_type} data at {path}{detail}")


class RequestMismatchError(DataError):
    """
    A stored money request does not match the caller-supplied parameters.

    Raised before any wallet mutation to guard against replayed or tampered
    approval calls.
    """

    code: str = "REQUEST_MISMATCH"

    def __init__(self, request_id: str, field: str, expected: Any, received: Any):
        self.request_id = request_id
        self.field = field
        self.expected = expected
        self.received = received
        super().__init__(
            f"Request {request_id} does not match provided parameters: "
            f"{field} is {expected!r}, received {received!r}"
        )


# Concurrency errors


class ConcurrencyError(WorkhubKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Transaction kept conflicting with concurrent writers and gave up."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, path: str, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {path}: "
            f"document kept changing after {attempts} attempts"
        )


# Operation errors


class LedgerOperationError(WorkhubKernelError):
    """
    A store or network failure interrupted a ledger operation.

    The message is generic and safe to show to end users; the underlying
    failure is chained as ``__cause__`` and logged.
    """

    code: str = "LEDGER_OPERATION_FAILED"

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        readable = operation.replace("_", " ")
        super().__init__(message or f"Failed to {readable}. Please try again later.")


class CompensationFailedError(WorkhubKernelError):
    """A compensating write failed; the system is partially applied."""

    code: str = "COMPENSATION_FAILED"

    def __init__(self, saga: str, step: str):
        self.saga = saga
        self.step = step
        super().__init__(f"Compensation for step '{step}' of '{saga}' failed")


class ConfigurationError(WorkhubKernelError):
    """Configuration file contains an invalid value."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")
