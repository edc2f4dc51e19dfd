"""
LedgerSelector -- cached reads of profiles, wallets, campaigns and work.

Every method is read-through on the key named in its docstring; the ledger
operations clear those keys whenever they write the underlying documents.
"""

from __future__ import annotations

from typing import Any

from workhub_kernel.db.store import (
    campaign_path,
    transactions_path,
    user_path,
    wallet_path,
    works_path,
)
from workhub_kernel.domain.records import RequestType, request_collection
from workhub_kernel.selectors.base import BaseSelector
from workhub_kernel.services.base import require_id
from workhub_kernel.services.read_cache import ADMIN_DATA_KEY


class LedgerSelector(BaseSelector):
    def fetch_user_data(self, uid: str) -> dict[str, Any] | None:
        """``user:{uid}``; None if the user has no profile."""
        require_id("uid", uid)
        return self._read_through(f"user:{uid}", lambda: self.store.get(user_path(uid)))

    def fetch_wallet_data(self, uid: str) -> dict[str, Any] | None:
        """``wallet:{uid}``; None if no wallet exists yet."""
        require_id("uid", uid)
        return self._read_through(f"wallet:{uid}", lambda: self.store.get(wallet_path(uid)))

    def fetch_transactions(self, uid: str) -> dict[str, Any]:
        """``transactions:{uid}``: audit records keyed by push id."""
        require_id("uid", uid)
        return self._read_through(
            f"transactions:{uid}",
            lambda: self.store.get(transactions_path(uid)),
            default={},
        )

    def fetch_campaigns(self) -> dict[str, Any]:
        """``campaigns:all``: every campaign keyed by id."""
        return self._read_through(
            "campaigns:all", lambda: self.store.get("campaigns"), default={}
        )

    def fetch_campaign(self, campaign_id: str) -> dict[str, Any] | None:
        """``campaign:{campaign_id}``."""
        require_id("campaign_id", campaign_id)
        return self._read_through(
            f"campaign:{campaign_id}", lambda: self.store.get(campaign_path(campaign_id))
        )

    def fetch_works(self, uid: str) -> dict[str, Any]:
        """``works:{uid}``: the user's work items keyed by campaign id."""
        require_id("uid", uid)
        return self._read_through(
            f"works:{uid}", lambda: self.store.get(works_path(uid)), default={}
        )

    def fetch_admin_data(self) -> dict[str, Any]:
        """``admin:data``: users, campaigns, works and both request queues."""

        def load() -> dict[str, Any]:
            return {
                "users": self.store.get("users") or {},
                "campaigns": self.store.get("campaigns") or {},
                "works": self.store.get("works") or {},
                "addMoneyRequests": self.store.get(request_collection(RequestType.ADD_MONEY)) or {},
                "withdrawalRequests": self.store.get(request_collection(RequestType.WITHDRAWAL)) or {},
            }

        return self._read_through(ADMIN_DATA_KEY, load)
