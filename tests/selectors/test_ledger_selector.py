"""
LedgerSelector: read-through caching over the document store.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from workhub_kernel.db.memory_store import InMemoryDocumentStore
from workhub_kernel.db.store import user_path, wallet_path
from workhub_kernel.exceptions import InvalidInputError
from workhub_kernel.selectors.ledger_selector import LedgerSelector
from workhub_kernel.services.ledger_service import LedgerService


class CountingStore(InMemoryDocumentStore):
    """Counts reads and holds each one open for ``delay`` seconds."""

    def __init__(self, delay=0.0):
        super().__init__()
        self.delay = delay
        self.reads = 0
        self._reads_lock = threading.Lock()

    def get(self, path):
        with self._reads_lock:
            self.reads += 1
        time.sleep(self.delay)
        return super().get(path)


class FailingStore(InMemoryDocumentStore):
    def get(self, path):
        raise ConnectionError("store unavailable")


class InterleavingStore(InMemoryDocumentStore):
    """Runs ``on_read`` once, after the next read of ``path`` has been served."""

    def __init__(self):
        super().__init__()
        self.path = None
        self.on_read = None

    def get(self, path):
        value = super().get(path)
        if path == self.path and self.on_read is not None:
            hook, self.on_read = self.on_read, None
            hook()
        return value


class TestReadThrough:
    def test_cached_value_served_until_cleared(self, ledger_selector, store, cache, create_user):
        create_user("u1", bio="first")
        assert ledger_selector.fetch_user_data("u1")["bio"] == "first"

        store.update(user_path("u1"), {"bio": "second"})
        assert ledger_selector.fetch_user_data("u1")["bio"] == "first"

        cache.clear("user:u1")
        assert ledger_selector.fetch_user_data("u1")["bio"] == "second"

    def test_cached_value_expires(self, ledger_selector, store, create_user, deterministic_clock):
        create_user("u1", bio="first")
        ledger_selector.fetch_user_data("u1")
        store.update(user_path("u1"), {"bio": "second"})

        deterministic_clock.advance(301)

        assert ledger_selector.fetch_user_data("u1")["bio"] == "second"

    def test_missing_document_not_cached(self, ledger_selector, cache, create_user):
        assert ledger_selector.fetch_user_data("u1") is None
        assert ledger_selector.fetch_wallet_data("u1") is None
        assert cache.get_cache_keys() == []

        create_user("u1")
        assert ledger_selector.fetch_user_data("u1")["uid"] == "u1"

    def test_collection_defaults(self, ledger_selector, cache):
        assert ledger_selector.fetch_transactions("u1") == {}
        assert ledger_selector.fetch_works("u1") == {}
        assert ledger_selector.fetch_campaigns() == {}
        assert cache.get_cache_keys() == []

    def test_keys_follow_naming(
        self, ledger_selector, cache, create_user, create_wallet, create_campaign, create_work
    ):
        create_user("u1")
        create_wallet("u1")
        create_campaign("c1")
        create_work("u1", "c1")

        ledger_selector.fetch_user_data("u1")
        ledger_selector.fetch_wallet_data("u1")
        ledger_selector.fetch_campaigns()
        ledger_selector.fetch_campaign("c1")
        ledger_selector.fetch_works("u1")

        assert sorted(cache.get_cache_keys()) == [
            "campaign:c1",
            "campaigns:all",
            "user:u1",
            "wallet:u1",
            "works:u1",
        ]

    def test_admin_data_bundles_collections(
        self, ledger_selector, create_user, create_campaign, create_money_request
    ):
        create_user("u1")
        create_campaign("c1")
        create_money_request("add_money", "r1", "u1", 100)

        data = ledger_selector.fetch_admin_data()

        assert set(data) == {"users", "campaigns", "works", "addMoneyRequests", "withdrawalRequests"}
        assert list(data["users"]) == ["u1"]
        assert list(data["addMoneyRequests"]) == ["r1"]
        assert data["works"] == {}
        assert data["withdrawalRequests"] == {}

    def test_invalid_id(self, ledger_selector):
        with pytest.raises(InvalidInputError):
            ledger_selector.fetch_wallet_data("")


class TestInvalidationByOperations:
    def test_wallet_refreshes_after_update(self, ledger_selector, ledger, create_wallet):
        create_wallet("u1", addedBalance=100)
        assert ledger_selector.fetch_wallet_data("u1")["addedBalance"] == 100

        ledger.update_wallet_balance("u1", lambda w: {"addedBalance": 250})

        assert ledger_selector.fetch_wallet_data("u1")["addedBalance"] == 250

    def test_campaigns_refresh_after_application(
        self, ledger_selector, ledger, create_campaign
    ):
        create_campaign("c1")
        assert ledger_selector.fetch_campaign("c1")["completedWorkers"] == 0

        ledger.apply_to_campaign("c1", "w1", "Worker One", 5)

        assert ledger_selector.fetch_campaign("c1")["completedWorkers"] == 1
        assert ledger_selector.fetch_works("w1")["c1"]["status"] == "pending"


class TestCoalescedReads:
    def test_concurrent_misses_read_store_once(self, cache):
        store = CountingStore(delay=0.2)
        store.set(user_path("u1"), {"uid": "u1"})
        selector = LedgerSelector(store, cache)
        n_threads = 10
        barrier = threading.Barrier(n_threads)

        def worker(_):
            barrier.wait()
            return selector.fetch_user_data("u1")

        with ThreadPoolExecutor(max_workers=n_threads) as pool:
            results = list(pool.map(worker, range(n_threads)))

        assert store.reads == 1
        assert all(r == {"uid": "u1"} for r in results)

    def test_store_error_logged_and_raised(self, cache, captured_logs):
        selector = LedgerSelector(FailingStore(), cache)

        with pytest.raises(ConnectionError):
            selector.fetch_wallet_data("u1")

        errors = [r for r in captured_logs() if r["message"] == "selector_fetch_failed"]
        assert len(errors) == 1
        assert errors[0]["key"] == "wallet:u1"
        assert not cache.is_fetching("wallet:u1")


class TestAdminDataInvalidation:
    """Every operation that writes a collection in the admin snapshot drops it."""

    PROOF_URL = "https://proof.example.com/screenshot.png"

    def test_approve_refreshes_work_status(
        self, ledger_selector, ledger, admin, create_user, create_work
    ):
        create_user("w1")
        create_work("w1", "c1", reward=50)
        assert ledger_selector.fetch_admin_data()["works"]["w1"]["c1"]["status"] == "pending"

        assert ledger.approve_work_and_credit("c1", "w1", "c1", 50, admin_id=admin)

        assert ledger_selector.fetch_admin_data()["works"]["w1"]["c1"]["status"] == "approved"

    def test_reject_refreshes_work_and_campaign(
        self, ledger_selector, ledger, admin, create_campaign, create_work
    ):
        create_campaign("c1", completed_workers=3)
        create_work("w1", "c1")
        ledger_selector.fetch_admin_data()

        assert ledger.reject_work_and_restore_campaign_budget("c1", "w1", "c1", admin_id=admin)

        data = ledger_selector.fetch_admin_data()
        assert data["works"]["w1"]["c1"]["status"] == "rejected"
        assert data["campaigns"]["c1"]["completedWorkers"] == 2

    def test_apply_shows_new_work(self, ledger_selector, ledger, create_campaign):
        create_campaign("c1", total_workers=10)
        assert ledger_selector.fetch_admin_data()["works"] == {}

        assert ledger.apply_to_campaign("c1", "w1", "Worker One", 5, acting_id="w1")

        data = ledger_selector.fetch_admin_data()
        assert data["works"]["w1"]["c1"]["status"] == "pending"
        assert data["campaigns"]["c1"]["completedWorkers"] == 1

    def test_submit_shows_proof(self, ledger_selector, ledger, create_work):
        create_work("w1", "c1", status="rejected")
        assert ledger_selector.fetch_admin_data()["works"]["w1"]["c1"]["status"] == "rejected"

        assert ledger.submit_work_for_campaign("c1", "w1", self.PROOF_URL, acting_id="w1")

        work = ledger_selector.fetch_admin_data()["works"]["w1"]["c1"]
        assert work["status"] == "pending"
        assert work["proofUrl"] == self.PROOF_URL

    def test_deduct_refreshes_budget(
        self, ledger_selector, ledger, create_wallet, create_campaign
    ):
        create_wallet("creator", addedBalance=1000)
        create_campaign("c1", creator_id="creator", total_workers=100, reward_per_worker=5)
        assert ledger_selector.fetch_admin_data()["campaigns"]["c1"]["remainingBudget"] == 500

        assert ledger.deduct_campaign_budget("c1", 500, "creator", acting_id="creator")

        assert ledger_selector.fetch_admin_data()["campaigns"]["c1"]["remainingBudget"] == 0

    def test_create_campaign_shows_campaign(
        self, ledger_selector, campaign_service, create_wallet
    ):
        create_wallet("creator", addedBalance=1000)
        assert ledger_selector.fetch_admin_data()["campaigns"] == {}

        campaign_id = campaign_service.create_campaign(
            "creator",
            creator_name="Campaign Creator",
            title="Rate our checkout flow",
            description="Try the checkout and tell us what broke.",
            instructions="Complete one purchase with the test card.",
            category="Testing",
            total_workers=100,
            reward_per_worker=5,
            acting_id="creator",
        )

        assert campaign_id is not None
        campaigns = ledger_selector.fetch_admin_data()["campaigns"]
        assert campaigns[campaign_id]["status"] == "active"


class TestWritesDuringFetch:
    def test_stale_load_not_cached(self, cache, deterministic_clock):
        store = InterleavingStore()
        store.set(wallet_path("u1"), {"addedBalance": 100, "earnedBalance": 0})
        selector = LedgerSelector(store, cache)
        ledger = LedgerService(store, cache, deterministic_clock)
        store.path = wallet_path("u1")
        store.on_read = lambda: ledger.update_wallet_balance("u1", lambda w: {"addedBalance": 40})

        # The caller that raced the write still sees what it read.
        assert selector.fetch_wallet_data("u1")["addedBalance"] == 100

        assert store.get(wallet_path("u1"))["addedBalance"] == 40
        assert "wallet:u1" not in cache.get_cache_keys()
        assert selector.fetch_wallet_data("u1")["addedBalance"] == 40

    def test_clear_all_during_load_skips_write(self, cache):
        store = InterleavingStore()
        store.set(user_path("u1"), {"uid": "u1"})
        selector = LedgerSelector(store, cache)
        store.path = user_path("u1")
        store.on_read = cache.clear_all

        selector.fetch_user_data("u1")

        assert cache.get_cache_keys() == []

    def test_untouched_load_is_cached(self, cache):
        store = InterleavingStore()
        store.set(user_path("u1"), {"uid": "u1"})
        selector = LedgerSelector(store, cache)
        store.path = user_path("u1")
        store.on_read = lambda: cache.clear("user:u2")

        selector.fetch_user_data("u1")

        assert cache.get_cache_keys() == ["user:u1"]
