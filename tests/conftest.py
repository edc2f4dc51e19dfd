"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- Structured logging setup and log capture
- A deterministic clock, an in-memory document store and a read cache
- Service and selector instances wired to them
- Factory fixtures that seed users, wallets, campaigns, work items and
  money requests
- A fault-injecting store wrapper for compensation tests
"""

import json
import logging
from io import StringIO
from typing import Any

import pytest

from workhub_kernel.bootstrap import Workhub
from workhub_kernel.db.memory_store import InMemoryDocumentStore
from workhub_kernel.db.store import (
    DocumentStore,
    TransactFn,
    TransactResult,
    campaign_path,
    join_path,
    user_path,
    wallet_path,
    work_path,
)
from workhub_kernel.domain.clock import DeterministicClock
from workhub_kernel.domain.records import WalletBalance, request_collection
from workhub_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workhub_kernel.services.ledger_service import LedgerService
from workhub_kernel.services.read_cache import ReadCache

TEST_ADMIN_ID = "admin"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture workhub_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.deduct_campaign_budget("c1", 500, "u1")
            logs = captured_logs()
            assert any(r["message"] == "campaign_budget_deducted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workhub_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def cache(deterministic_clock):
    return ReadCache(deterministic_clock)


@pytest.fixture
def hub(store, cache, deterministic_clock) -> Workhub:
    return Workhub(store, cache, deterministic_clock)


@pytest.fixture
def ledger(hub):
    return hub.ledger


@pytest.fixture
def campaign_service(hub):
    return hub.campaigns


@pytest.fixture
def account_service(hub):
    return hub.accounts


@pytest.fixture
def ledger_selector(hub):
    return hub.selector


@pytest.fixture
def leaderboard_selector(hub):
    return hub.leaderboard


# =============================================================================
# Factory fixtures
# =============================================================================


@pytest.fixture
def create_user(store, deterministic_clock):
    """Factory fixture to create a user profile document."""

    def _create_user(uid: str, *, role: str = "user", **fields: Any) -> dict:
        doc = {
            "uid": uid,
            "email": f"{uid}@example.com",
            "fullName": f"Worker {uid}",
            "role": role,
            "isBlocked": False,
            "earnedMoney": 0,
            "addedMoney": 0,
            "approvedWorks": 0,
            "totalWithdrawn": 0,
            "createdAt": deterministic_clock.now_ms(),
            **fields,
        }
        store.set(user_path(uid), doc)
        return doc

    return _create_user


@pytest.fixture
def create_wallet(store):
    """Factory fixture to create a wallet; unspecified fields are zero."""

    def _create_wallet(uid: str, **balances: float) -> dict:
        doc = WalletBalance.from_document(balances)
        store.set(wallet_path(uid), doc)
        return doc

    return _create_wallet


@pytest.fixture
def create_campaign(store, deterministic_clock):
    """Factory fixture to create an active campaign document."""

    def _create_campaign(
        campaign_id: str = "c1",
        *,
        creator_id: str = "creator",
        total_workers: int = 10,
        reward_per_worker: float = 5,
        remaining_budget: float | None = None,
        completed_workers: int = 0,
        status: str = "active",
        **overrides: Any,
    ) -> dict:
        total_budget = total_workers * reward_per_worker
        doc = {
            "id": campaign_id,
            "title": "Rate our checkout flow",
            "description": "Try the checkout and tell us what broke.",
            "instructions": "Complete one purchase with the test card.",
            "category": "Testing",
            "priority": "medium",
            "totalWorkers": total_workers,
            "completedWorkers": completed_workers,
            "rewardPerWorker": reward_per_worker,
            "totalBudget": total_budget,
            "remainingBudget": total_budget if remaining_budget is None else remaining_budget,
            "creatorId": creator_id,
            "creatorName": "Campaign Creator",
            "status": status,
            "createdAt": deterministic_clock.now_ms(),
            **overrides,
        }
        store.set(campaign_path(campaign_id), doc)
        return doc

    return _create_campaign


@pytest.fixture
def create_work(store, deterministic_clock):
    """Factory fixture to create a work item at ``works/{uid}/{campaign_id}``."""

    def _create_work(
        uid: str,
        campaign_id: str = "c1",
        *,
        status: str = "pending",
        reward: float = 5,
        submitted_at: int | None = None,
    ) -> dict:
        doc = {
            "id": campaign_id,
            "userId": uid,
            "userName": f"Worker {uid}",
            "campaignId": campaign_id,
            "proofUrl": "",
            "status": status,
            "submittedAt": (
                deterministic_clock.now_ms() if submitted_at is None else submitted_at
            ),
            "reward": reward,
        }
        store.set(work_path(uid, campaign_id), doc)
        return doc

    return _create_work


@pytest.fixture
def create_money_request(store, deterministic_clock):
    """Factory fixture to create a pending add-money or withdrawal request."""

    def _create_money_request(
        request_type: str,
        request_id: str,
        uid: str,
        amount: float,
        *,
        status: str = "pending",
    ) -> str:
        path = join_path(request_collection(request_type), request_id)
        store.set(
            path,
            {
                "id": request_id,
                "type": request_type,
                "userId": uid,
                "amount": amount,
                "status": status,
                "createdAt": deterministic_clock.now_ms(),
            },
        )
        return path

    return _create_money_request


@pytest.fixture
def admin(create_user):
    """An unblocked admin user; yields its uid."""
    create_user(TEST_ADMIN_ID, role="admin")
    return TEST_ADMIN_ID


# =============================================================================
# Fault injection
# =============================================================================


class FaultInjectingStore(DocumentStore):
    """
    Delegates to ``inner`` and raises on chosen ``transact`` calls.

    ``fail_transact(prefix, after=n)`` lets ``n`` calls on paths under
    ``prefix`` through and raises on the next one, once.
    """

    def __init__(self, inner: DocumentStore):
        self.inner = inner
        self.max_retries = inner.max_retries
        self._faults: list[list] = []

    def fail_transact(
        self, prefix: str, *, after: int = 0, error: Exception | None = None
    ) -> None:
        self._faults.append(
            [prefix, after, error or RuntimeError(f"store unavailable: {prefix}")]
        )

    def get(self, path: str) -> Any:
        return self.inner.get(path)

    def set(self, path: str, value: Any) -> None:
        self.inner.set(path, value)

    def delete(self, path: str) -> None:
        self.inner.delete(path)

    def transact(self, path: str, fn: TransactFn) -> TransactResult:
        for fault in self._faults:
            prefix, remaining, error = fault
            if not path.startswith(prefix):
                continue
            if remaining == 0:
                self._faults.remove(fault)
                raise error
            fault[1] = remaining - 1
        return self.inner.transact(path, fn)


@pytest.fixture
def faulty_store(store):
    """Wraps ``store``; seed through the factory fixtures as usual."""
    return FaultInjectingStore(store)


@pytest.fixture
def faulty_ledger(faulty_store, cache, deterministic_clock):
    return LedgerService(faulty_store, cache, deterministic_clock)
