"""
Workhub -- composition root for the ledger kernel.

Ties together:
- Store: the document store every service writes through
- Cache: the single read cache shared by services and selectors
- Authorization: role checks against the same store
- Services: ledger, campaign and account operations
- Selectors: cached reads and the leaderboard

Applications build one ``Workhub`` per process, either from explicit
collaborators (tests) or from a ``WorkhubConfig`` via ``from_config``.
"""

from __future__ import annotations

import logging

from workhub_config.schema import StoreBackend, StoreSettings, WorkhubConfig
from workhub_kernel.db.engine import create_tables, init_engine_from_url
from workhub_kernel.db.memory_store import InMemoryDocumentStore
from workhub_kernel.db.sql_store import SqlDocumentStore
from workhub_kernel.db.store import DocumentStore
from workhub_kernel.domain.clock import Clock, SystemClock
from workhub_kernel.logging_config import configure_logging, get_logger
from workhub_kernel.selectors.leaderboard_selector import LeaderboardSelector
from workhub_kernel.selectors.ledger_selector import LedgerSelector
from workhub_kernel.services.account_service import AccountService
from workhub_kernel.services.authorization import AuthorizationChecker
from workhub_kernel.services.campaign_service import CampaignService
from workhub_kernel.services.ledger_service import LedgerService
from workhub_kernel.services.read_cache import ReadCache

logger = get_logger("bootstrap")


def build_store(settings: StoreSettings) -> DocumentStore:
    """
    Create the document store named by ``settings``.

    For the sql backend this initializes the module-level engine and
    creates the documents table if it is missing.
    """
    if settings.backend is StoreBackend.SQL:
        init_engine_from_url(settings.database_url, echo=settings.echo)
        create_tables()
        return SqlDocumentStore(max_retries=settings.max_transaction_retries)
    return InMemoryDocumentStore(max_retries=settings.max_transaction_retries)


class Workhub:
    """
    One wired-up kernel instance.

    Usage:
        hub = Workhub.from_config(get_active_config())
        hub.accounts.register_user("u1", "ada@example.com", "Ada Lovelace")
        wallet = hub.selector.fetch_wallet_data("u1")
        ...
        hub.end_session()
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: ReadCache | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.clock = clock if clock is not None else SystemClock()
        self.cache = cache if cache is not None else ReadCache(self.clock)
        self.authorization = AuthorizationChecker(store)

        self.ledger = LedgerService(store, self.cache, self.clock, self.authorization)
        self.campaigns = CampaignService(
            store, self.cache, self.clock, self.authorization, ledger=self.ledger
        )
        self.accounts = AccountService(store, self.cache, self.clock, self.authorization)
        self.selector = LedgerSelector(store, self.cache)
        self.leaderboard = LeaderboardSelector(store, self.cache, self.clock)

    @classmethod
    def from_config(cls, config: WorkhubConfig, clock: Clock | None = None) -> Workhub:
        """Build the store and cache described by ``config``."""
        configure_logging(level=logging.getLevelName(config.logging.level))
        clock = clock if clock is not None else SystemClock()
        store = build_store(config.store)
        cache = ReadCache(
            clock,
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        )
        logger.info(
            "workhub_started",
            extra={"store_backend": config.store.backend.value, "source": config.source},
        )
        return cls(store, cache, clock)

    def end_session(self) -> None:
        """Drop every cached read; called when the signed-in user changes."""
        self.cache.clear_all()
        logger.info("session_ended")
