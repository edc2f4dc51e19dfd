"""
BaseService -- abstract base for the kernel's mutating services.

Responsibility:
    Holds the collaborators every service needs (document store, read cache,
    clock, authorization checker) and the shared error-propagation guard.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Error propagation:
    ``_operation`` binds the operation name into ``LogContext`` and lets the
    kernel's own input, authorization and data errors through unchanged.
    Anything else raised inside it (a store driver failure, an exhausted
    optimistic retry) is logged with its traceback and re-raised as
    ``LedgerOperationError`` carrying a generic message, with the original
    exception chained as ``__cause__``.
"""

from __future__ import annotations

from abc import ABC
from contextlib import contextmanager
from typing import Any, Generator

from workhub_kernel.db.store import DocumentStore
from workhub_kernel.domain.clock import Clock, SystemClock
from workhub_kernel.domain.saga import Saga, SagaAborted, SagaOutcome
from workhub_kernel.domain.validation import is_non_empty_string, is_number
from workhub_kernel.exceptions import (
    AuthorizationError,
    DataError,
    InputError,
    InvalidInputError,
    LedgerOperationError,
)
from workhub_kernel.logging_config import LogContext, get_logger
from workhub_kernel.services.authorization import AuthorizationChecker
from workhub_kernel.services.read_cache import ADMIN_DATA_KEY, ReadCache

logger = get_logger("services.base")

_PASSTHROUGH = (InputError, AuthorizationError, DataError)


class BaseService(ABC):
    """
    Contract:
        Services never hold document state between calls; every decision is
        made from a fresh store read or inside a store transaction.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: ReadCache,
        clock: Clock | None = None,
        authorization: AuthorizationChecker | None = None,
    ):
        self.store = store
        self.cache = cache
        self.clock = clock if clock is not None else SystemClock()
        self.authorization = (
            authorization if authorization is not None else AuthorizationChecker(store)
        )

    @contextmanager
    def _operation(self, name: str, **context: Any) -> Generator[None, None, None]:
        with LogContext.bind(operation=name, user_id=context.get("user_id")):
            try:
                yield
            except _PASSTHROUGH:
                raise
            except Exception as exc:
                logger.error(
                    "ledger_operation_failed",
                    extra={"operation": name, **context},
                    exc_info=True,
                )
                raise LedgerOperationError(name) from exc

    def _authorize(
        self,
        acting_id: str | None,
        target_id: str,
        action: str,
        required_role: str | None = None,
    ) -> None:
        """Only checked when a caller identity is supplied."""
        if acting_id is None:
            return
        self.authorization.require(acting_id, target_id, action, required_role)

    @staticmethod
    def _run(saga: Saga) -> SagaOutcome:
        """Run ``saga``; a forward-step exception surfaces as itself."""
        try:
            return saga.run()
        except SagaAborted as aborted:
            error = aborted.error
        raise error

    def _invalidate_campaign(self, campaign_id: str) -> None:
        self.cache.clear("campaigns:all")
        self.cache.clear(f"campaign:{campaign_id}")
        self.cache.clear(ADMIN_DATA_KEY)

    def _invalidate_worker(self, user_id: str) -> None:
        """Drop the worker's cached reads and the admin snapshot that lists their works."""
        self.cache.invalidate_user_cache(user_id)
        self.cache.clear(ADMIN_DATA_KEY)


# ---------------------------------------------------------------------------
# Argument checks shared by services
# ---------------------------------------------------------------------------


def require_id(field: str, value: Any) -> str:
    if not is_non_empty_string(value):
        raise InvalidInputError(field, "must be a non-empty string", value)
    return value


def require_amount(
    field: str,
    value: Any,
    low: float,
    high: float,
    *,
    low_inclusive: bool = False,
) -> float:
    """``low < value <= high`` (or ``low <= value`` when ``low_inclusive``)."""
    if not is_number(value):
        raise InvalidInputError(field, "must be a number", value)
    below = value < low if low_inclusive else value <= low
    if below or value > high:
        bound = "[" if low_inclusive else "("
        raise InvalidInputError(field, f"must be in {bound}{low}, {high}]", value)
    return value
