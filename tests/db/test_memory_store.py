"""
InMemoryDocumentStore: path semantics, copies, and optimistic transactions.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from workhub_kernel.bootstrap import Workhub
from workhub_kernel.db.memory_store import InMemoryDocumentStore
from workhub_kernel.db.store import ABORT, TransactResult, nest, normalize_path
from workhub_kernel.domain.records import WalletBalance
from workhub_kernel.exceptions import InvalidInputError, OptimisticLockError


class TestPaths:
    def test_surrounding_slashes_stripped(self):
        assert normalize_path("/users/u1/") == "users/u1"

    @pytest.mark.parametrize("path", ["", "/", "users//u1", "users/u.1", "a/b#", "a/$b", "a/[0]"])
    def test_illegal_paths_rejected(self, path):
        with pytest.raises(InvalidInputError):
            normalize_path(path)

    def test_non_string_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_path(None)

    def test_nest(self):
        assert nest([("u1/c1", 1), ("u1/c2", 2), ("u2/c1", 3)]) == {
            "u1": {"c1": 1, "c2": 2},
            "u2": {"c1": 3},
        }
        assert nest([]) is None


class TestReadsAndWrites:
    def test_missing_document_is_none(self, store):
        assert store.get("users/nobody") is None
        assert not store.exists("users/nobody")

    def test_set_then_get(self, store):
        store.set("users/u1", {"fullName": "Ada"})
        assert store.get("users/u1") == {"fullName": "Ada"}
        assert store.exists("users/u1")

    def test_reads_are_copies(self, store):
        store.set("users/u1", {"tags": ["a"]})
        doc = store.get("users/u1")
        doc["tags"].append("b")
        assert store.get("users/u1") == {"tags": ["a"]}

    def test_writes_are_copies(self, store):
        doc = {"n": 1}
        store.set("counters/a", doc)
        doc["n"] = 2
        assert store.get("counters/a") == {"n": 1}

    def test_collection_read_nests_children(self, store):
        store.set("works/u1/c1", {"status": "pending"})
        store.set("works/u1/c2", {"status": "approved"})
        store.set("works/u2/c1", {"status": "rejected"})

        assert store.get("works") == {
            "u1": {"c1": {"status": "pending"}, "c2": {"status": "approved"}},
            "u2": {"c1": {"status": "rejected"}},
        }
        assert store.get("works/u1") == {
            "c1": {"status": "pending"},
            "c2": {"status": "approved"},
        }

    def test_sibling_prefix_not_included(self, store):
        store.set("works/u1/c1", {"n": 1})
        store.set("works/u10/c1", {"n": 2})
        assert store.get("works/u1") == {"c1": {"n": 1}}

    def test_set_none_deletes(self, store):
        store.set("users/u1", {"a": 1})
        store.set("users/u1", None)
        assert store.get("users/u1") is None

    def test_delete_removes_subtree(self, store):
        store.set("works/u1/c1", {"n": 1})
        store.set("works/u1/c2", {"n": 2})
        store.set("works/u2/c1", {"n": 3})
        store.delete("works/u1")
        assert store.paths() == ["works/u2/c1"]

    def test_initial_documents(self):
        seeded = InMemoryDocumentStore({"users/u1": {"a": 1}})
        assert seeded.get("users/u1") == {"a": 1}

    def test_update_merges_and_drops_none(self, store):
        store.set("users/u1", {"a": 1, "b": 2})
        store.update("users/u1", {"b": None, "c": 3})
        assert store.get("users/u1") == {"a": 1, "c": 3}

    def test_update_creates_missing_document(self, store):
        store.update("users/u1", {"a": 1})
        assert store.get("users/u1") == {"a": 1}

    def test_update_requires_dict(self, store):
        with pytest.raises(InvalidInputError):
            store.update("users/u1", ["a"])

    def test_push_appends_under_fresh_key(self, store):
        first = store.push("transactions/u1", {"amount": 1})
        second = store.push("transactions/u1", {"amount": 2})

        assert first != second
        assert len(first) == 32
        assert store.get("transactions/u1") == {
            first: {"amount": 1},
            second: {"amount": 2},
        }


class TestTransact:
    def test_creates_document(self, store):
        result = store.transact("counters/a", lambda current: {"n": 1})
        assert result == TransactResult(committed=True, value={"n": 1})
        assert result
        assert store.get("counters/a") == {"n": 1}

    def test_abort_leaves_document_untouched(self, store):
        store.set("counters/a", {"n": 1})
        result = store.transact("counters/a", lambda current: ABORT)

        assert not result
        assert result.committed is False
        assert result.value == {"n": 1}
        assert store.get("counters/a") == {"n": 1}

    def test_abort_sentinel_is_falsy_singleton(self):
        assert not ABORT
        assert repr(ABORT) == "ABORT"
        assert type(ABORT)() is ABORT

    def test_returning_none_deletes(self, store):
        store.set("counters/a", {"n": 1})
        result = store.transact("counters/a", lambda current: None)
        assert result.committed
        assert store.get("counters/a") is None

    def test_function_receives_private_copy(self, store):
        store.set("counters/a", {"n": 1})

        def mutate_then_abort(current):
            current["n"] = 99
            return ABORT

        store.transact("counters/a", mutate_then_abort)
        assert store.get("counters/a") == {"n": 1}

    def test_conflicting_write_triggers_retry(self, store, captured_logs):
        store.set("counters/a", {"n": 0})
        seen = []

        def increment(current):
            seen.append(current["n"])
            if len(seen) == 1:
                store.set("counters/a", {"n": 10})
            return {"n": current["n"] + 1}

        result = store.transact("counters/a", increment)

        assert seen == [0, 10]
        assert result.value == {"n": 11}
        assert store.get("counters/a") == {"n": 11}
        assert any(r["message"] == "transaction_conflict_retry" for r in captured_logs())

    def test_retries_exhausted(self, captured_logs):
        store = InMemoryDocumentStore(max_retries=3)
        calls = []

        def always_conflicts(current):
            calls.append(current)
            store.set("counters/a", {"n": len(calls)})
            return {"n": -1}

        with pytest.raises(OptimisticLockError) as exc_info:
            store.transact("counters/a", always_conflicts)

        assert exc_info.value.attempts == 3
        assert exc_info.value.path == "counters/a"
        assert len(calls) == 3
        assert store.get("counters/a") == {"n": 3}
        assert any(r["message"] == "transaction_retries_exhausted" for r in captured_logs())

    def test_concurrent_increments_all_land(self, store):
        """20 threads increment one counter; no update is lost."""
        store.set("counters/a", {"n": 0})
        n_threads = 20
        barrier = threading.Barrier(n_threads)

        def worker():
            barrier.wait()
            return store.transact("counters/a", lambda current: {"n": current["n"] + 1})

        with ThreadPoolExecutor(max_workers=n_threads) as pool:
            results = list(pool.map(lambda _: worker(), range(n_threads)))

        assert all(r.committed for r in results)
        assert store.get("counters/a") == {"n": n_threads}


class TestTreeSemantics:
    def test_collection_write_splits_into_documents(self, store):
        store.set("works/u1", {"c1": {"status": "pending"}, "c2": {"status": "approved"}})

        assert store.paths() == ["works/u1/c1", "works/u1/c2"]
        assert store.get("works/u1/c1") == {"status": "pending"}

    def test_collection_write_replaces_previous_entries(self, store):
        store.set("works/u1/old", {"status": "rejected"})
        store.set("works/u1", {"c1": {"status": "pending"}})
        assert store.paths() == ["works/u1/c1"]

    def test_collection_requires_dict(self, store):
        store.set("campaigns/c1", {"title": "kept"})
        with pytest.raises(InvalidInputError):
            store.set("campaigns", ["not", "a", "dict"])
        assert store.get("campaigns/c1") == {"title": "kept"}

    def test_seeded_collection_is_readable(self):
        seeded = InMemoryDocumentStore({"campaigns": {"c1": {"status": "active"}}})

        assert seeded.paths() == ["campaigns/c1"]
        assert seeded.get("campaigns/c1") == {"status": "active"}
        assert seeded.get("campaigns") == {"c1": {"status": "active"}}

    def test_field_read_and_write_inside_document(self, store):
        store.set("users/u1", {"bio": "first", "links": {"x": "https://x.com"}})

        assert store.get("users/u1/links/x") == "https://x.com"
        assert store.get("users/u1/missing/deeper") is None

        store.set("users/u1/bio", "second")
        assert store.paths() == ["users/u1"]
        assert store.get("users/u1") == {"bio": "second", "links": {"x": "https://x.com"}}

    def test_field_write_creates_document(self, store):
        store.set("wallets/u1/addedBalance", 5)
        assert store.paths() == ["wallets/u1"]
        assert store.get("wallets/u1") == {"addedBalance": 5}

    def test_field_delete_prunes_empty_parents(self, store):
        store.set("users/u1", {"bio": "b", "links": {"x": "https://x.com"}})

        store.delete("users/u1/links/x")
        assert store.get("users/u1") == {"bio": "b"}

        store.set("users/u1/bio", None)
        assert store.get("users/u1") is None
        assert store.paths() == []

    def test_unknown_root_reads_through_parent_document(self, store):
        store.set("settings/site", {"theme": {"color": "teal"}})
        assert store.get("settings/site/theme/color") == "teal"

        store.set("settings/site/theme/color", "navy")
        assert store.paths() == ["settings/site"]
        assert store.get("settings/site") == {"theme": {"color": "navy"}}

    def test_transact_on_field(self, store):
        store.set("users/u1", {"approvedWorks": 2, "bio": "b"})

        result = store.transact("users/u1/approvedWorks", lambda current: current + 1)

        assert result.value == 3
        assert store.get("users/u1") == {"approvedWorks": 3, "bio": "b"}

    def test_field_transact_conflicts_with_document_write(self, store):
        store.set("users/u1", {"approvedWorks": 2})
        seen = []

        def increment(current):
            seen.append(current)
            if len(seen) == 1:
                store.set("users/u1", {"approvedWorks": 10})
            return current + 1

        assert store.transact("users/u1/approvedWorks", increment).value == 11
        assert seen == [2, 10]

    def test_transact_on_entry_of_collection_write(self, store):
        store.set("works/u1", {"c1": {"status": "pending"}})

        result = store.transact("works/u1/c1", lambda current: {**current, "status": "approved"})

        assert result.committed
        assert store.get("works/u1") == {"c1": {"status": "approved"}}

    def test_transact_on_collection_rejected(self, store):
        store.set("works/u1/c1", {"status": "pending"})
        with pytest.raises(InvalidInputError):
            store.transact("works/u1", lambda current: current)
        with pytest.raises(InvalidInputError):
            store.update("campaigns", {"c1": {"status": "active"}})

    def test_transact_on_path_with_separate_documents_rejected(self, store):
        store.set("settings/a", {"n": 1})
        store.set("settings/b", {"n": 2})
        with pytest.raises(InvalidInputError):
            store.transact("settings", lambda current: current)


class TestSeededLedger:
    def test_deduct_against_seeded_collections(self, deterministic_clock):
        seeded = InMemoryDocumentStore(
            {
                "wallets": {"creator": WalletBalance.from_document({"addedBalance": 1000})},
                "campaigns": {
                    "c1": {
                        "title": "Rate our checkout flow",
                        "description": "Try the checkout and tell us what broke.",
                        "creatorId": "creator",
                        "totalWorkers": 100,
                        "rewardPerWorker": 5,
                        "totalBudget": 500,
                        "remainingBudget": 500,
                        "completedWorkers": 0,
                        "status": "active",
                    }
                },
            }
        )
        hub = Workhub(seeded, clock=deterministic_clock)

        assert hub.ledger.deduct_campaign_budget("c1", 500, "creator") is True

        assert seeded.get("campaigns/c1/remainingBudget") == 0
        assert seeded.get("wallets/creator/addedBalance") == 500
        assert hub.selector.fetch_campaign("c1")["remainingBudget"] == 0
