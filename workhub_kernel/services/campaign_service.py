"""
CampaignService -- publishing and funding new campaigns.

A campaign is published as ``active`` with ``totalBudget`` and
``remainingBudget`` both set to ``totalWorkers * rewardPerWorker``, then
funded through ``LedgerService.deduct_campaign_budget``, which debits the
creator's ``addedBalance`` and the campaign's ``remainingBudget`` by the same
amount.  If funding does not go through, the campaign is kept but marked
``failed``.

Creators may publish at most ``CAMPAIGNS_PER_HOUR_LIMIT`` campaigns in any
rolling hour.
"""

from __future__ import annotations

from typing import Any

from workhub_kernel.db.store import DocumentStore, campaign_path, new_push_id
from workhub_kernel.domain.clock import Clock
from workhub_kernel.domain.profile import (
    is_valid_campaign_category,
    is_valid_campaign_description,
    is_valid_campaign_instructions,
    is_valid_campaign_title,
    sanitize_input,
)
from workhub_kernel.domain.records import CampaignPriority, CampaignStatus, round_money
from workhub_kernel.domain.saga import Saga
from workhub_kernel.domain.validation import is_integer_like, validate_campaign
from workhub_kernel.exceptions import InvalidInputError
from workhub_kernel.invariants import (
    CAMPAIGNS_PER_HOUR_LIMIT,
    MAX_CAMPAIGN_DEDUCTION,
    MAX_REWARD,
    MAX_TOTAL_WORKERS,
    MIN_REWARD_PER_WORKER,
    MIN_TOTAL_WORKERS,
)
from workhub_kernel.logging_config import get_logger
from workhub_kernel.services.authorization import AuthorizationChecker
from workhub_kernel.services.base import BaseService, require_amount, require_id
from workhub_kernel.services.ledger_service import LedgerService
from workhub_kernel.services.read_cache import ReadCache

logger = get_logger("services.campaign_service")

HOUR_MS = 60 * 60 * 1000


class CampaignService(BaseService):
    def __init__(
        self,
        store: DocumentStore,
        cache: ReadCache,
        clock: Clock | None = None,
        authorization: AuthorizationChecker | None = None,
        ledger: LedgerService | None = None,
    ):
        super().__init__(store, cache, clock, authorization)
        if ledger is None:
            ledger = LedgerService(store, cache, self.clock, self.authorization)
        self.ledger = ledger

    def create_campaign(
        self,
        creator_id: str,
        creator_name: str,
        title: str,
        description: str,
        instructions: str,
        category: str,
        total_workers: int,
        reward_per_worker: float,
        priority: str = CampaignPriority.MEDIUM.value,
        acting_id: str | None = None,
    ) -> str | None:
        """
        Publish and fund a campaign.

        Returns:
            The new campaign id, or None if the creator hit the hourly limit
            or the funding deduction did not apply (the campaign is then
            stored with ``status = "failed"``).

        Raises:
            InvalidInputError: text fails sanitization or length rules, the
                category or priority is unknown, or the worker count or
                reward is out of range.
        """
        require_id("creator_id", creator_id)
        require_id("creator_name", creator_name)
        clean = {
            "title": sanitize_input(title),
            "description": sanitize_input(description),
            "instructions": sanitize_input(instructions),
        }
        if not is_valid_campaign_title(clean["title"]):
            raise InvalidInputError("title", "must be 3-100 characters without markup")
        if not is_valid_campaign_description(clean["description"]):
            raise InvalidInputError("description", "must be 10-2000 characters without markup")
        if not is_valid_campaign_instructions(clean["instructions"]):
            raise InvalidInputError("instructions", "must be 10-5000 characters without markup")
        if not is_valid_campaign_category(category):
            raise InvalidInputError("category", "unknown campaign category", category)
        if priority not in {p.value for p in CampaignPriority}:
            raise InvalidInputError("priority", "must be low, medium or high", priority)
        if not is_integer_like(total_workers) or not (
            MIN_TOTAL_WORKERS <= total_workers <= MAX_TOTAL_WORKERS
        ):
            raise InvalidInputError(
                "total_workers",
                f"must be a whole number in [{MIN_TOTAL_WORKERS}, {MAX_TOTAL_WORKERS}]",
                total_workers,
            )
        require_amount(
            "reward_per_worker", reward_per_worker, MIN_REWARD_PER_WORKER, MAX_REWARD,
            low_inclusive=True,
        )
        total_cost = round_money(int(total_workers) * reward_per_worker)
        require_amount("total_cost", total_cost, 0, MAX_CAMPAIGN_DEDUCTION)
        self._authorize(acting_id, creator_id, "create_campaign")

        now = self.clock.now_ms()
        campaign_id = new_push_id()
        path = campaign_path(campaign_id)
        document: dict[str, Any] = {
            "id": campaign_id,
            **clean,
            "category": category,
            "priority": priority,
            "totalWorkers": int(total_workers),
            "completedWorkers": 0,
            "rewardPerWorker": reward_per_worker,
            "totalBudget": total_cost,
            "remainingBudget": total_cost,
            "creatorId": creator_id,
            "creatorName": creator_name,
            "status": CampaignStatus.ACTIVE.value,
            "createdAt": now,
        }
        check = validate_campaign(document)
        if not check:
            raise InvalidInputError("campaign", ", ".join(check.codes))

        def publish() -> str:
            self.store.set(path, document)
            return path

        saga = (
            Saga("create_campaign")
            .step("publish_campaign", publish, self._mark_failed)
            .step(
                "fund_campaign",
                lambda: self.ledger.deduct_campaign_budget(campaign_id, total_cost, creator_id),
            )
        )

        with self._operation("create_campaign", user_id=creator_id):
            if self._recent_campaign_count(creator_id, now) >= CAMPAIGNS_PER_HOUR_LIMIT:
                logger.info("campaign_rate_limited", extra={"creator_id": creator_id})
                return None
            try:
                outcome = self._run(saga)
            finally:
                self._invalidate_campaign(campaign_id)

            if not outcome:
                logger.warning(
                    "campaign_funding_failed",
                    extra={"campaign_id": campaign_id, "total_cost": total_cost},
                )
                return None
            logger.info(
                "campaign_created",
                extra={"campaign_id": campaign_id, "total_cost": total_cost},
            )
            return campaign_id

    def _recent_campaign_count(self, creator_id: str, now: int) -> int:
        campaigns = self.store.get("campaigns") or {}
        since = now - HOUR_MS
        return sum(
            1
            for campaign in campaigns.values()
            if isinstance(campaign, dict)
            and campaign.get("creatorId") == creator_id
            and isinstance(campaign.get("createdAt"), (int, float))
            and campaign["createdAt"] > since
        )

    def _mark_failed(self, path: str) -> None:
        self.store.update(path, {"status": CampaignStatus.FAILED.value})
