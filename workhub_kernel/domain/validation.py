"""
Validation -- one structural validator per stored entity.

Responsibility:
    Checks the shape and range of wallet, campaign, transaction, work and
    money-request documents. Each ``validate_*`` function returns a
    ``ValidationResult`` listing every violated rule; each ``is_valid_*``
    wrapper reduces that to a bool for use inside transaction functions.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    WALLET_BOUNDS, CAMPAIGN_BUDGET (see ``workhub_kernel.invariants``).

Failure modes:
    None. Validators are total over arbitrary input: a non-dict, a missing
    key, a string where a number belongs or a bool masquerading as an int
    all produce a failed result, never an exception.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from workhub_kernel.domain.records import (
    WALLET_FIELDS,
    RequestStatus,
    RequestType,
    TransactionStatus,
    TransactionType,
    UserRole,
    WorkStatus,
)
from workhub_kernel.invariants import (
    CLOCK_DRIFT_TOLERANCE_MS,
    MAX_ADD_MONEY,
    MAX_DESCRIPTION_LENGTH,
    MAX_REWARD,
    MAX_TITLE_LENGTH,
    MAX_TOTAL_WORKERS,
    MAX_TRANSACTION_AMOUNT,
    MAX_WALLET_BALANCE,
    MAX_WITHDRAWAL,
    MIN_ADD_MONEY,
    MIN_REWARD_PER_WORKER,
    MIN_TOTAL_WORKERS,
    MIN_WITHDRAWAL,
)


@dataclass(frozen=True)
class ValidationError:
    """A single violated rule."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @classmethod
    def from_errors(cls, errors: list[ValidationError]) -> ValidationResult:
        return cls.failure(*errors) if errors else cls.success()

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Primitive checks
# ---------------------------------------------------------------------------


def is_number(value: Any) -> bool:
    """True for finite ints and floats. Bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_integer_like(value: Any) -> bool:
    return is_number(value) and float(value).is_integer()


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_one_of(value: Any, allowed: frozenset[str]) -> bool:
    return isinstance(value, str) and value in allowed


def is_valid_amount(amount: Any, minimum: float, maximum: float) -> bool:
    """``minimum <= amount <= maximum`` for a real number ``amount``."""
    return is_number(amount) and minimum <= amount <= maximum


def _not_a_mapping(entity: str) -> ValidationResult:
    return ValidationResult.failure(
        ValidationError("NOT_A_DOCUMENT", f"{entity} data must be an object")
    )


def _check_range(
    errors: list[ValidationError],
    data: dict[str, Any],
    key: str,
    low: float,
    high: float,
    *,
    low_inclusive: bool = True,
) -> None:
    value = data.get(key)
    if value is None:
        errors.append(ValidationError("MISSING_FIELD", f"{key} is required", key))
        return
    if not is_number(value):
        errors.append(ValidationError("NOT_A_NUMBER", f"{key} must be a number", key))
        return
    below = value < low if low_inclusive else value <= low
    if below or value > high:
        bound = "[" if low_inclusive else "("
        errors.append(
            ValidationError(
                "OUT_OF_RANGE", f"{key} must be in {bound}{low}, {high}]", key
            )
        )


# ---------------------------------------------------------------------------
# Entity validators
# ---------------------------------------------------------------------------


def validate_wallet(data: Any) -> ValidationResult:
    """All four wallet fields present, numeric and within [0, 10,000,000]."""
    if not isinstance(data, dict):
        return _not_a_mapping("Wallet")
    errors: list[ValidationError] = []
    for key in WALLET_FIELDS:
        _check_range(errors, data, key, 0, MAX_WALLET_BALANCE)
    return ValidationResult.from_errors(errors)


_CAMPAIGN_REQUIRED = (
    "title",
    "description",
    "creatorId",
    "totalWorkers",
    "rewardPerWorker",
    "totalBudget",
    "remainingBudget",
)


def validate_campaign(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _not_a_mapping("Campaign")
    errors: list[ValidationError] = []

    missing = [k for k in _CAMPAIGN_REQUIRED if data.get(k) is None]
    for key in missing:
        errors.append(ValidationError("MISSING_FIELD", f"{key} is required", key))
    if missing:
        return ValidationResult.failure(*errors)

    for key, limit in (("title", MAX_TITLE_LENGTH), ("description", MAX_DESCRIPTION_LENGTH)):
        text = data[key]
        if not isinstance(text, str) or not 1 <= len(text) <= limit:
            errors.append(
                ValidationError("INVALID_LENGTH", f"{key} must be 1-{limit} characters", key)
            )

    if not is_non_empty_string(data["creatorId"]):
        errors.append(ValidationError("INVALID_CREATOR", "creatorId must be a string", "creatorId"))

    workers = data["totalWorkers"]
    if not is_integer_like(workers) or not MIN_TOTAL_WORKERS <= workers <= MAX_TOTAL_WORKERS:
        errors.append(
            ValidationError(
                "OUT_OF_RANGE",
                f"totalWorkers must be an integer in [{MIN_TOTAL_WORKERS}, {MAX_TOTAL_WORKERS}]",
                "totalWorkers",
            )
        )

    _check_range(errors, data, "rewardPerWorker", MIN_REWARD_PER_WORKER, MAX_REWARD)
    _check_range(errors, data, "totalBudget", 0, math.inf)
    _check_range(errors, data, "remainingBudget", 0, math.inf)

    total, remaining = data["totalBudget"], data["remainingBudget"]
    if is_number(total) and is_number(remaining) and remaining > total:
        errors.append(
            ValidationError(
                "BUDGET_EXCEEDED",
                "remainingBudget must not exceed totalBudget",
                "remainingBudget",
            )
        )
    return ValidationResult.from_errors(errors)


_TRANSACTION_TYPES = frozenset(t.value for t in TransactionType)
_TRANSACTION_STATUSES = frozenset(
    s.value for s in TransactionStatus if s is not TransactionStatus.FAILED
)


def validate_transaction(data: Any, now_ms: int) -> ValidationResult:
    """
    Audit record shape. ``createdAt`` may run ahead of ``now_ms`` by at most
    the clock-drift tolerance.
    """
    if not isinstance(data, dict):
        return _not_a_mapping("Transaction")
    errors: list[ValidationError] = []

    if not _is_one_of(data.get("type"), _TRANSACTION_TYPES):
        errors.append(ValidationError("INVALID_TYPE", "Unknown transaction type", "type"))
    _check_range(errors, data, "amount", 0, MAX_TRANSACTION_AMOUNT, low_inclusive=False)
    if not _is_one_of(data.get("status"), _TRANSACTION_STATUSES):
        errors.append(ValidationError("INVALID_STATUS", "Unknown transaction status", "status"))

    created_at = data.get("createdAt")
    if not is_number(created_at):
        errors.append(ValidationError("NOT_A_NUMBER", "createdAt must be a timestamp", "createdAt"))
    elif created_at > now_ms + CLOCK_DRIFT_TOLERANCE_MS:
        errors.append(ValidationError("FUTURE_DATED", "createdAt is in the future", "createdAt"))
    return ValidationResult.from_errors(errors)


_WORK_STATUSES = frozenset(s.value for s in WorkStatus)


def validate_work(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _not_a_mapping("Work")
    errors: list[ValidationError] = []
    _check_range(errors, data, "reward", 0, MAX_REWARD, low_inclusive=False)
    if not _is_one_of(data.get("status"), _WORK_STATUSES):
        errors.append(ValidationError("INVALID_STATUS", "Unknown work status", "status"))
    for key in ("userId", "campaignId"):
        if not is_non_empty_string(data.get(key)):
            errors.append(ValidationError("MISSING_FIELD", f"{key} is required", key))
    return ValidationResult.from_errors(errors)


_REQUEST_BOUNDS = {
    RequestType.ADD_MONEY.value: (MIN_ADD_MONEY, MAX_ADD_MONEY),
    RequestType.WITHDRAWAL.value: (MIN_WITHDRAWAL, MAX_WITHDRAWAL),
}
_REQUEST_STATUSES = frozenset(s.value for s in RequestStatus)


def money_request_bounds(request_type: str) -> tuple[float, float] | None:
    """Inclusive amount bounds for a request type, or None if unknown."""
    if not isinstance(request_type, str):
        return None
    return _REQUEST_BOUNDS.get(request_type)


def validate_money_request(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return _not_a_mapping("Money request")
    errors: list[ValidationError] = []

    bounds = money_request_bounds(data.get("type"))
    if bounds is None:
        errors.append(ValidationError("INVALID_TYPE", "Unknown request type", "type"))
    else:
        _check_range(errors, data, "amount", *bounds)
    if not _is_one_of(data.get("status"), _REQUEST_STATUSES):
        errors.append(ValidationError("INVALID_STATUS", "Unknown request status", "status"))
    if not is_non_empty_string(data.get("userId")):
        errors.append(ValidationError("MISSING_FIELD", "userId is required", "userId"))
    return ValidationResult.from_errors(errors)


def validate_authorization_params(
    acting_id: Any, target_id: Any, required_role: Any = None
) -> bool:
    """Sanity check for authorization arguments before any lookup."""
    if not is_non_empty_string(acting_id) or not is_non_empty_string(target_id):
        return False
    return required_role is None or required_role == UserRole.ADMIN.value


# ---------------------------------------------------------------------------
# Boolean predicates
# ---------------------------------------------------------------------------


def is_valid_wallet(data: Any) -> bool:
    return validate_wallet(data).is_valid


def is_valid_campaign(data: Any) -> bool:
    return validate_campaign(data).is_valid


def is_valid_transaction(data: Any, now_ms: int) -> bool:
    return validate_transaction(data, now_ms).is_valid


def is_valid_work(data: Any) -> bool:
    return validate_work(data).is_valid


def is_valid_money_request(data: Any) -> bool:
    return validate_money_request(data).is_valid
