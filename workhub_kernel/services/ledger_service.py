"""
LedgerService -- guarded money-movement operations.

Responsibility:
    Every operation that moves money or changes a work item, campaign or
    money request.  Each one follows the same protocol:

    1. Check argument shapes and ranges (``InvalidInputError``).
    2. If a caller identity is supplied, authorize it against the target
       (``UnauthorizedError``).
    3. Read the referenced documents and re-validate their stored shape
       (``EntityNotFoundError`` / ``DataIntegrityError``).
    4. Run one store transaction per document.  Each transaction function
       recomputes the post-state from the value it is handed, never from the
       step 3 read, and re-validates it before returning it; a violated
       business rule or invalid post-state returns ``ABORT``.
    5. Invalidate every cache key the operation may have made stale.
    6. Operations touching several documents run as a ``Saga`` so that a
       later step that does not apply, or raises, compensates the earlier
       steps in reverse order.

Architecture position:
    Kernel > Services -- imperative shell over the store, cache and domain.

Invariants enforced:
    WALLET_BOUNDS    -- every wallet write is validated inside its transaction.
    CAMPAIGN_BUDGET  -- ``remainingBudget <= totalBudget`` checked on every
                        campaign write that touches the budget.
    SINGLE_APPLICATION -- a work item is only created if its path is empty.
    PENDING_TRANSITIONS -- approve/reject/process only act on pending items.
    CACHE_COHERENCE  -- see step 5.

Failure modes:
    - Business-rule non-applicability (insufficient funds, campaign full,
      already applied, not pending) returns False / None.
    - Store failures are logged and re-raised as ``LedgerOperationError``.
    - Compensation is best effort.  A failed compensating write is logged by
      the saga and leaves the documents partially applied.
"""

from __future__ import annotations

from typing import Any, Callable

from workhub_kernel.db.store import (
    ABORT,
    TransactResult,
    campaign_path,
    join_path,
    transactions_path,
    user_path,
    wallet_path,
    work_path,
)
from workhub_kernel.domain.profile import is_valid_url
from workhub_kernel.domain.records import (
    WALLET_FIELDS,
    CampaignStatus,
    RequestStatus,
    RequestType,
    TransactionStatus,
    UserRole,
    WalletBalance,
    WorkStatus,
    request_collection,
    round_money,
)
from workhub_kernel.domain.saga import Saga
from workhub_kernel.domain.validation import (
    is_number,
    is_valid_campaign,
    is_valid_wallet,
    is_valid_work,
    money_request_bounds,
    validate_campaign,
    validate_money_request,
    validate_transaction,
    validate_wallet,
    validate_work,
)
from workhub_kernel.exceptions import (
    DataIntegrityError,
    EntityNotFoundError,
    InvalidInputError,
    RequestMismatchError,
    UnauthorizedError,
)
from workhub_kernel.invariants import MAX_CAMPAIGN_DEDUCTION, MAX_REWARD
from workhub_kernel.logging_config import get_logger
from workhub_kernel.services.base import BaseService, require_amount, require_id

logger = get_logger("services.ledger_service")

ADMIN = UserRole.ADMIN.value


def _counter(doc: dict[str, Any], key: str) -> float:
    value = doc.get(key)
    return value if is_number(value) else 0


def _balance(current: Any) -> dict[str, Any] | None:
    """Zero-filled copy of a stored wallet, or None if it is not a valid wallet."""
    if current is not None and not isinstance(current, dict):
        return None
    balance = WalletBalance.from_document(current)
    return balance if is_valid_wallet(balance) else None


class LedgerService(BaseService):
    """
    Usage:
        ledger = LedgerService(store, cache, clock)
        if not ledger.deduct_campaign_budget("c1", 500, "u1", acting_id="u1"):
            ...  # insufficient budget or balance, nothing changed
    """

    # -----------------------------------------------------------------------
    # Wallet primitives
    # -----------------------------------------------------------------------

    def update_wallet_balance(
        self,
        uid: str,
        update_fn: Callable[[dict[str, Any]], dict[str, Any] | None],
        acting_id: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Apply ``update_fn`` to the current wallet inside a transaction.

        ``update_fn`` receives the full wallet (zeros if missing) and returns
        the fields to change, or None / ``ABORT`` to leave it untouched.  The
        merged wallet must still be valid or the write is aborted.

        Returns:
            The committed wallet, or None if the update was aborted.
        """
        require_id("uid", uid)
        if not callable(update_fn):
            raise InvalidInputError("update_fn", "must be callable")
        self._authorize(acting_id, uid, "update_wallet_balance")

        path = wallet_path(uid)

        def apply(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            changes = update_fn(dict(balance))
            if changes is None or changes is ABORT:
                return ABORT
            if not isinstance(changes, dict):
                raise InvalidInputError("update_fn", "must return a dict, None or ABORT")
            updated = {**balance, **changes}
            if not is_valid_wallet(updated):
                logger.warning(
                    "wallet_update_rejected", extra={"uid": uid, "wallet": updated}
                )
                return ABORT
            return updated

        with self._operation("update_wallet_balance", user_id=uid):
            result = self.store.transact(path, apply)
            if not result.committed:
                logger.info("wallet_update_aborted", extra={"uid": uid})
                return None
            self._check_wallet(path, result.value)
            self.cache.invalidate_user_cache(uid)
            return result.value

    def create_transaction_and_adjust_wallet(
        self,
        uid: str,
        tx_record: dict[str, Any],
        wallet_delta: dict[str, float],
        acting_id: str | None = None,
    ) -> bool:
        """
        Append an audit record under ``transactions/{uid}`` and then add
        ``wallet_delta`` to the wallet, clamping each field at zero.

        The two writes are separate.  If the wallet step aborts or raises,
        the audit record stays in place with ``status = "failed"``.
        """
        require_id("uid", uid)
        if not isinstance(tx_record, dict):
            raise InvalidInputError("tx_record", "must be a dict")
        if not isinstance(wallet_delta, dict):
            raise InvalidInputError("wallet_delta", "must be a dict")
        for key, delta in wallet_delta.items():
            if key not in WALLET_FIELDS:
                raise InvalidInputError("wallet_delta", f"unknown wallet field {key!r}")
            if not is_number(delta):
                raise InvalidInputError("wallet_delta", f"{key} must be a number", delta)
        self._authorize(acting_id, uid, "create_transaction")

        check = validate_transaction(tx_record, self.clock.now_ms())
        if not check:
            raise InvalidInputError("tx_record", ", ".join(check.codes))

        wallet = wallet_path(uid)
        audit: dict[str, str] = {}

        def append_record() -> str:
            audit["path"] = transactions_path(uid, self.store.push(transactions_path(uid), tx_record))
            return audit["path"]

        def mark_failed(record_path: str) -> None:
            self.store.update(record_path, {"status": TransactionStatus.FAILED.value})

        def adjust(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            updated = dict(balance)
            for key, delta in wallet_delta.items():
                updated[key] = max(0, round_money(balance[key] + delta))
            if not is_valid_wallet(updated):
                logger.warning(
                    "wallet_adjustment_rejected", extra={"uid": uid, "wallet": updated}
                )
                return ABORT
            return updated

        def adjust_wallet() -> TransactResult:
            result = self.store.transact(wallet, adjust)
            if result.committed:
                self._check_wallet(wallet, result.value)
            return result

        saga = (
            Saga("create_transaction_and_adjust_wallet")
            .step("append_audit_record", append_record, mark_failed)
            .step("adjust_wallet", adjust_wallet)
        )
        with self._operation("create_transaction_and_adjust_wallet", user_id=uid):
            try:
                outcome = self._run(saga)
            finally:
                self.cache.invalidate_user_cache(uid)
            if not outcome:
                logger.warning(
                    "transaction_marked_failed", extra={"uid": uid, "record": audit.get("path")}
                )
            return outcome.completed

    # -----------------------------------------------------------------------
    # Campaign funding
    # -----------------------------------------------------------------------

    def deduct_campaign_budget(
        self,
        campaign_id: str,
        amount: float,
        uid: str,
        acting_id: str | None = None,
    ) -> bool:
        """
        Debit ``amount`` from the campaign's ``remainingBudget`` and then from
        the creator's ``addedBalance``.

        If the wallet debit does not apply, the campaign debit is reversed.

        Raises:
            EntityNotFoundError: no campaign at ``campaigns/{campaign_id}``.
            UnauthorizedError: ``uid`` is not the campaign's creator.
            DataIntegrityError: the stored campaign fails validation.
        """
        require_id("campaign_id", campaign_id)
        require_amount("amount", amount, 0, MAX_CAMPAIGN_DEDUCTION)
        require_id("uid", uid)
        self._authorize(acting_id, uid, "deduct_campaign_budget")

        campaign = campaign_path(campaign_id)
        wallet = wallet_path(uid)

        def debit_campaign_doc(current: Any) -> Any:
            if not is_valid_campaign(current):
                return ABORT
            if current["remainingBudget"] < amount:
                return ABORT
            remaining = round_money(current["remainingBudget"] - amount)
            updated = {**current, "remainingBudget": remaining}
            return updated if is_valid_campaign(updated) else ABORT

        def credit_campaign_doc(current: Any) -> Any:
            if not isinstance(current, dict) or not is_number(current.get("remainingBudget")):
                return ABORT
            remaining = round_money(current["remainingBudget"] + amount)
            updated = {**current, "remainingBudget": remaining}
            return updated if is_valid_campaign(updated) else ABORT

        def restore_campaign(_: Any) -> None:
            self._require_commit(campaign, "campaign", self.store.transact(campaign, credit_campaign_doc))

        def debit_wallet_doc(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            if balance["addedBalance"] < amount:
                return ABORT
            updated = {**balance, "addedBalance": round_money(balance["addedBalance"] - amount)}
            return updated if is_valid_wallet(updated) else ABORT

        saga = (
            Saga("deduct_campaign_budget")
            .step("debit_campaign", lambda: self.store.transact(campaign, debit_campaign_doc), restore_campaign)
            .step("debit_wallet", lambda: self.store.transact(wallet, debit_wallet_doc))
        )

        with self._operation("deduct_campaign_budget", user_id=uid, campaign_id=campaign_id):
            current = self.store.get(campaign)
            if current is None:
                raise EntityNotFoundError("campaign", campaign)
            if not isinstance(current, dict) or current.get("creatorId") != uid:
                raise UnauthorizedError(uid, campaign_id, "deduct_campaign_budget")
            self._check(validate_campaign(current), "campaign", campaign)

            try:
                outcome = self._run(saga)
            finally:
                self.cache.invalidate_user_cache(uid)
                self._invalidate_campaign(campaign_id)

            if not outcome:
                logger.warning(
                    "campaign_budget_deduction_not_applied",
                    extra={
                        "campaign_id": campaign_id,
                        "amount": amount,
                        "failed_step": outcome.failed_step,
                    },
                )
                return False
            logger.info(
                "campaign_budget_deducted",
                extra={"campaign_id": campaign_id, "amount": amount},
            )
            return True

    # -----------------------------------------------------------------------
    # Work review
    # -----------------------------------------------------------------------

    def approve_work_and_credit(
        self,
        work_id: str,
        user_id: str,
        campaign_id: str,
        reward: float,
        admin_id: str | None = None,
    ) -> bool:
        """
        Approve a pending work item and pay its reward.

        Steps: work -> approved; wallet ``earnedBalance`` += reward; user
        ``earnedMoney`` += reward and ``approvedWorks`` += 1; final wallet
        re-validation.  A later step failing rolls back the earlier ones.

        Returns:
            False if the work item is not pending or the wallet credit would
            break the wallet bounds.

        Raises:
            DataIntegrityError: the wallet is invalid after the credit.  The
                work status and user counters are rolled back first; the
                credit itself is only reversed if the wallet still allows it.
        """
        require_id("work_id", work_id)
        require_id("user_id", user_id)
        require_id("campaign_id", campaign_id)
        require_amount("reward", reward, 0, MAX_REWARD)
        self._authorize(admin_id, user_id, "approve_work", ADMIN)

        work = work_path(user_id, work_id)
        wallet = wallet_path(user_id)
        user = user_path(user_id)

        def credit_wallet_doc(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            updated = {**balance, "earnedBalance": round_money(balance["earnedBalance"] + reward)}
            return updated if is_valid_wallet(updated) else ABORT

        def debit_wallet_doc(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            earned = max(0, round_money(balance["earnedBalance"] - reward))
            updated = {**balance, "earnedBalance": earned}
            return updated if is_valid_wallet(updated) else ABORT

        def bump_counters(sign: int) -> Callable[[Any], Any]:
            def apply(current: Any) -> Any:
                if not isinstance(current, dict):
                    return ABORT
                return {
                    **current,
                    "earnedMoney": max(
                        0, round_money(_counter(current, "earnedMoney") + sign * reward)
                    ),
                    "approvedWorks": max(0, _counter(current, "approvedWorks") + sign),
                }

            return apply

        def increment_user_counters() -> Any:
            result = self.store.transact(user, bump_counters(+1))
            # Users without a profile document are paid but not counted.
            return result if result.committed or result.value is not None else True

        def decrement_user_counters(result: Any) -> None:
            if isinstance(result, TransactResult):
                self.store.transact(user, bump_counters(-1))

        def verify_wallet() -> bool:
            self._check_wallet(wallet, self.store.get(wallet))
            return True

        saga = (
            Saga("approve_work_and_credit")
            .step(
                "approve_work",
                lambda: self._transition_work(work, (WorkStatus.PENDING,), WorkStatus.APPROVED),
                lambda _: self._revert_work(work, WorkStatus.APPROVED),
            )
            .step(
                "credit_wallet",
                lambda: self.store.transact(wallet, credit_wallet_doc),
                lambda _: self._require_commit(
                    wallet, "wallet", self.store.transact(wallet, debit_wallet_doc)
                ),
            )
            .step("increment_user_counters", increment_user_counters, decrement_user_counters)
            .step("verify_wallet", verify_wallet)
        )

        with self._operation("approve_work_and_credit", user_id=user_id, work_id=work_id):
            if not self._load_work(work, allowed=(WorkStatus.PENDING,)):
                return False
            try:
                outcome = self._run(saga)
            finally:
                self._invalidate_worker(user_id)
                self.cache.invalidate_cache("leaderboard:")

            if not outcome:
                logger.warning(
                    "work_approval_not_applied",
                    extra={"work_id": work_id, "failed_step": outcome.failed_step},
                )
                return False
            logger.info(
                "work_approved",
                extra={"work_id": work_id, "campaign_id": campaign_id, "reward": reward},
            )
            return True

    def reject_work_and_restore_campaign_budget(
        self,
        work_id: str,
        user_id: str,
        campaign_id: str,
        admin_id: str | None = None,
    ) -> bool:
        """
        Reject a pending work item and free its campaign slot.

        ``completedWorkers`` is decremented (never below zero).  The
        campaign's ``remainingBudget`` is left alone: budget is reserved
        once when the campaign is funded and is not refunded per rejected
        worker.  A missing campaign only skips the slot release.
        """
        require_id("work_id", work_id)
        require_id("user_id", user_id)
        require_id("campaign_id", campaign_id)
        self._authorize(admin_id, user_id, "reject_work", ADMIN)

        work = work_path(user_id, work_id)
        campaign = campaign_path(campaign_id)

        def release_slot() -> bool:
            self.store.transact(campaign, self._shift_workers(-1))
            return True

        saga = (
            Saga("reject_work_and_restore_campaign_budget")
            .step(
                "reject_work",
                lambda: self._transition_work(work, (WorkStatus.PENDING,), WorkStatus.REJECTED),
                lambda _: self._revert_work(work, WorkStatus.REJECTED),
            )
            .step("release_slot", release_slot)
        )

        with self._operation("reject_work", user_id=user_id, work_id=work_id):
            if not self._load_work(work, allowed=(WorkStatus.PENDING,)):
                return False
            try:
                outcome = self._run(saga)
            finally:
                self._invalidate_worker(user_id)
                self._invalidate_campaign(campaign_id)

            if outcome:
                logger.info("work_rejected", extra={"work_id": work_id, "campaign_id": campaign_id})
            return outcome.completed

    # -----------------------------------------------------------------------
    # Money requests
    # -----------------------------------------------------------------------

    def process_money_request(
        self,
        request_id: str,
        request_type: str,
        user_id: str,
        amount: float,
        status: str,
        admin_id: str | None = None,
    ) -> bool:
        """
        Approve or reject a pending add-money or withdrawal request.

        The stored request must match ``request_type``, ``amount`` and
        ``user_id`` exactly.

        - approved add_money: ``addedBalance`` += amount and
          ``pendingAddMoney`` -= amount (floored at zero).
        - approved withdrawal: requires ``earnedBalance >= amount``; moves
          the amount from ``earnedBalance`` to ``totalWithdrawn`` and adds it
          to the user's ``totalWithdrawn``.
        - rejected: only the request status changes.

        If the wallet step does not apply the request goes back to pending.

        Raises:
            EntityNotFoundError: no such request.
            RequestMismatchError: stored request differs from the arguments;
                nothing is written.
        """
        require_id("request_id", request_id)
        if request_type not in {t.value for t in RequestType}:
            raise InvalidInputError("request_type", "must be add_money or withdrawal", request_type)
        require_id("user_id", user_id)
        if status not in (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value):
            raise InvalidInputError("status", "must be approved or rejected", status)
        low, high = money_request_bounds(request_type)
        require_amount("amount", amount, low, high, low_inclusive=True)
        self._authorize(admin_id, user_id, "process_money_request", ADMIN)

        request = join_path(request_collection(request_type), request_id)
        wallet = wallet_path(user_id)
        user = user_path(user_id)

        def set_status(current: Any) -> Any:
            if not isinstance(current, dict) or current.get("status") != RequestStatus.PENDING.value:
                return ABORT
            return {**current, "status": status}

        def reopen(current: Any) -> Any:
            if not isinstance(current, dict) or current.get("status") != status:
                return ABORT
            return {**current, "status": RequestStatus.PENDING.value}

        def add_money(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            updated = {
                **balance,
                "addedBalance": round_money(balance["addedBalance"] + amount),
                "pendingAddMoney": max(0, round_money(balance["pendingAddMoney"] - amount)),
            }
            return updated if is_valid_wallet(updated) else ABORT

        def withdraw(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            if balance["earnedBalance"] < amount:
                return ABORT
            updated = {
                **balance,
                "earnedBalance": round_money(balance["earnedBalance"] - amount),
                "totalWithdrawn": round_money(balance["totalWithdrawn"] + amount),
            }
            return updated if is_valid_wallet(updated) else ABORT

        def undo_withdraw(current: Any) -> Any:
            balance = _balance(current)
            if balance is None:
                return ABORT
            updated = {
                **balance,
                "earnedBalance": round_money(balance["earnedBalance"] + amount),
                "totalWithdrawn": max(0, round_money(balance["totalWithdrawn"] - amount)),
            }
            return updated if is_valid_wallet(updated) else ABORT

        def verify_wallet() -> bool:
            self._check_wallet(wallet, self.store.get(wallet))
            return True

        def reflect_withdrawal(current: Any) -> Any:
            if not isinstance(current, dict):
                return ABORT
            withdrawn = round_money(_counter(current, "totalWithdrawn") + amount)
            return {**current, "totalWithdrawn": withdrawn}

        def record_user_withdrawal() -> bool:
            self.store.transact(user, reflect_withdrawal)
            return True

        saga = Saga("process_money_request").step(
            "set_request_status",
            lambda: self.store.transact(request, set_status),
            lambda _: self._require_commit(request, "money_request", self.store.transact(request, reopen)),
        )
        if status == RequestStatus.APPROVED.value:
            if request_type == RequestType.ADD_MONEY.value:
                saga.step("credit_added_balance", lambda: self.store.transact(wallet, add_money))
            else:
                saga.step(
                    "debit_earned_balance",
                    lambda: self.store.transact(wallet, withdraw),
                    lambda _: self.store.transact(wallet, undo_withdraw),
                )
                saga.step("verify_wallet", verify_wallet)
                saga.step("record_user_withdrawal", record_user_withdrawal)

        with self._operation("process_money_request", user_id=user_id, request_id=request_id):
            stored = self.store.get(request)
            if stored is None:
                raise EntityNotFoundError("money_request", request)
            if not isinstance(stored, dict):
                raise DataIntegrityError("money_request", request, ("NOT_A_DOCUMENT",))
            for field, expected in (("type", request_type), ("amount", amount), ("userId", user_id)):
                if stored.get(field) != expected:
                    logger.warning(
                        "money_request_mismatch",
                        extra={"request_id": request_id, "field": field},
                    )
                    raise RequestMismatchError(request_id, field, stored.get(field), expected)
            self._check(validate_money_request(stored), "money_request", request)
            if stored["status"] != RequestStatus.PENDING.value:
                logger.info(
                    "money_request_not_pending",
                    extra={"request_id": request_id, "status": stored["status"]},
                )
                return False

            try:
                outcome = self._run(saga)
            finally:
                self._invalidate_worker(user_id)

            if not outcome:
                logger.warning(
                    "money_request_not_applied",
                    extra={"request_id": request_id, "failed_step": outcome.failed_step},
                )
                return False
            logger.info(
                "money_request_processed",
                extra={"request_id": request_id, "type": request_type, "status": status},
            )
            return True

    # -----------------------------------------------------------------------
    # Campaign participation
    # -----------------------------------------------------------------------

    def apply_to_campaign(
        self,
        campaign_id: str,
        user_id: str,
        user_name: str,
        reward: float,
        acting_id: str | None = None,
    ) -> bool:
        """
        Create the work item ``works/{user_id}/{campaign_id}`` and take one
        of the campaign's worker slots.

        The slot is reserved first, inside a campaign transaction that checks
        ``status == active`` and ``completedWorkers < totalWorkers`` against
        the latest committed value, so concurrent applicants can never push
        the campaign past capacity.  If the work item then turns out to exist
        already, the slot is released again.

        Returns:
            False if the user already applied, or the campaign is inactive
            or full.
        """
        require_id("campaign_id", campaign_id)
        require_id("user_id", user_id)
        require_id("user_name", user_name)
        require_amount("reward", reward, 0, MAX_REWARD)
        self._authorize(acting_id, user_id, "apply_to_campaign")

        campaign = campaign_path(campaign_id)
        work = work_path(user_id, campaign_id)
        item = {
            "id": campaign_id,
            "userId": user_id,
            "userName": user_name.strip(),
            "campaignId": campaign_id,
            "proofUrl": "",
            "status": WorkStatus.PENDING.value,
            "submittedAt": self.clock.now_ms(),
            "reward": reward,
        }
        check = validate_work(item)
        if not check:
            raise InvalidInputError("work", ", ".join(check.codes))

        def reserve(current: Any) -> Any:
            if not isinstance(current, dict) or current.get("status") != CampaignStatus.ACTIVE.value:
                return ABORT
            taken = _counter(current, "completedWorkers")
            if taken >= current.get("totalWorkers", 0):
                return ABORT
            return {**current, "completedWorkers": taken + 1}

        def create(current: Any) -> Any:
            return ABORT if current is not None else item

        saga = (
            Saga("apply_to_campaign")
            .step(
                "reserve_slot",
                lambda: self.store.transact(campaign, reserve),
                lambda _: self.store.transact(campaign, self._shift_workers(-1)),
            )
            .step("create_work_item", lambda: self.store.transact(work, create))
        )

        with self._operation("apply_to_campaign", user_id=user_id, campaign_id=campaign_id):
            if self.store.exists(work):
                logger.info("campaign_already_applied", extra={"campaign_id": campaign_id})
                return False
            current = self.store.get(campaign)
            if current is None:
                raise EntityNotFoundError("campaign", campaign)
            self._check(validate_campaign(current), "campaign", campaign)
            if current.get("status") != CampaignStatus.ACTIVE.value:
                logger.info("campaign_not_active", extra={"campaign_id": campaign_id})
                return False
            if _counter(current, "completedWorkers") >= current["totalWorkers"]:
                logger.info("campaign_full", extra={"campaign_id": campaign_id})
                return False

            try:
                outcome = self._run(saga)
            finally:
                self._invalidate_worker(user_id)
                self._invalidate_campaign(campaign_id)

            if not outcome:
                logger.info(
                    "campaign_application_not_applied",
                    extra={"campaign_id": campaign_id, "failed_step": outcome.failed_step},
                )
                return False
            logger.info("campaign_applied", extra={"campaign_id": campaign_id})
            return True

    def submit_work_for_campaign(
        self,
        campaign_id: str,
        user_id: str,
        proof_url: str,
        acting_id: str | None = None,
    ) -> bool:
        """
        Attach proof to a pending or rejected work item and put it back in
        the review queue with a fresh ``submittedAt``.

        Returns:
            False if the work item has already been approved.
        """
        require_id("campaign_id", campaign_id)
        require_id("user_id", user_id)
        if not is_valid_url(proof_url):
            raise InvalidInputError("proof_url", "must be an http or https URL", proof_url)
        self._authorize(acting_id, user_id, "submit_work")

        work = work_path(user_id, campaign_id)
        reviewable = (WorkStatus.PENDING.value, WorkStatus.REJECTED.value)
        submitted_at = self.clock.now_ms()

        def submit(current: Any) -> Any:
            if not isinstance(current, dict) or current.get("status") not in reviewable:
                return ABORT
            updated = {
                **current,
                "proofUrl": proof_url,
                "status": WorkStatus.PENDING.value,
                "submittedAt": submitted_at,
            }
            return updated if is_valid_work(updated) else ABORT

        with self._operation("submit_work", user_id=user_id, campaign_id=campaign_id):
            if not self._load_work(work, allowed=(WorkStatus.PENDING, WorkStatus.REJECTED)):
                return False
            try:
                result = self.store.transact(work, submit)
            finally:
                self._invalidate_worker(user_id)
            if result.committed:
                logger.info("work_submitted", extra={"campaign_id": campaign_id})
            return result.committed

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _load_work(self, path: str, allowed: tuple[WorkStatus, ...]) -> bool:
        """
        Read and validate a work item.

        Returns:
            False if its status is not one of ``allowed``.
        """
        current = self.store.get(path)
        if current is None:
            raise EntityNotFoundError("work", path)
        self._check(validate_work(current), "work", path)
        if current["status"] not in {s.value for s in allowed}:
            logger.info(
                "work_status_not_eligible",
                extra={"path": path, "status": current["status"]},
            )
            return False
        return True

    def _transition_work(
        self, path: str, sources: tuple[WorkStatus, ...], target: WorkStatus
    ) -> TransactResult:
        allowed = {s.value for s in sources}

        def apply(current: Any) -> Any:
            if not is_valid_work(current) or current["status"] not in allowed:
                return ABORT
            return {**current, "status": target.value}

        return self.store.transact(path, apply)

    def _revert_work(self, path: str, from_status: WorkStatus) -> None:
        result = self._transition_work(path, (from_status,), WorkStatus.PENDING)
        self._require_commit(path, "work", result)

    @staticmethod
    def _shift_workers(delta: int) -> Callable[[Any], Any]:
        def apply(current: Any) -> Any:
            if not isinstance(current, dict):
                return ABORT
            taken = _counter(current, "completedWorkers")
            return {**current, "completedWorkers": max(0, taken + delta)}

        return apply

    @staticmethod
    def _check(result, entity: str, path: str) -> None:
        if not result:
            logger.error(
                "stored_document_invalid",
                extra={"entity": entity, "path": path, "violations": list(result.codes)},
            )
            raise DataIntegrityError(entity, path, result.codes)

    def _check_wallet(self, path: str, value: Any) -> None:
        self._check(validate_wallet(value), "wallet", path)

    @staticmethod
    def _require_commit(path: str, entity: str, result: TransactResult) -> None:
        """Compensations that could not be applied surface as integrity errors."""
        if not result.committed:
            raise DataIntegrityError(entity, path, ("COMPENSATION_NOT_APPLIED",))
