"""Mutating services: ledger operations, campaigns, accounts, plus the cache and authorization they share."""

from workhub_kernel.services.account_service import AccountService
from workhub_kernel.services.authorization import AuthorizationChecker
from workhub_kernel.services.campaign_service import CampaignService
from workhub_kernel.services.ledger_service import LedgerService
from workhub_kernel.services.read_cache import ReadCache

__all__ = [
    "AccountService",
    "AuthorizationChecker",
    "CampaignService",
    "LedgerService",
    "ReadCache",
]
