"""
AccountService: registration, profile edits and the backfill migrations.
"""

import pytest

from workhub_kernel.db.store import user_path, wallet_path
from workhub_kernel.exceptions import EntityNotFoundError, InvalidInputError, UnauthorizedError
from workhub_kernel.services.account_service import profile_defaults


class TestRegisterUser:
    def test_creates_profile_and_zero_wallet(self, account_service, store, deterministic_clock):
        profile = account_service.register_user("u1", "ada@example.com", "  Ada Lovelace ")

        assert profile["fullName"] == "Ada Lovelace"
        assert profile["role"] == "user"
        assert profile["isBlocked"] is False
        assert profile["profileImage"] is None
        assert profile["createdAt"] == deterministic_clock.now_ms()
        assert store.get(user_path("u1")) == profile
        assert store.get(wallet_path("u1")) == {
            "earnedBalance": 0,
            "addedBalance": 0,
            "pendingAddMoney": 0,
            "totalWithdrawn": 0,
        }

    def test_profile_has_every_default_field(self, account_service):
        profile = account_service.register_user("u1", "ada@example.com", "Ada Lovelace")
        assert set(profile_defaults(0)) <= set(profile)

    def test_existing_user_untouched(self, account_service, store, create_user, create_wallet):
        create_user("u1", fullName="Grace Hopper")
        create_wallet("u1", addedBalance=40)

        assert account_service.register_user("u1", "ada@example.com", "Ada Lovelace") is None

        assert store.get(user_path("u1"))["fullName"] == "Grace Hopper"
        assert store.get(wallet_path("u1"))["addedBalance"] == 40

    def test_existing_wallet_kept(self, account_service, store, create_wallet):
        create_wallet("u1", earnedBalance=12)
        account_service.register_user("u1", "ada@example.com", "Ada Lovelace")
        assert store.get(wallet_path("u1"))["earnedBalance"] == 12

    @pytest.mark.parametrize(
        "email, name",
        [("not-an-email", "Ada Lovelace"), ("ada@example.com", "A"), ("ada@example.com", "Ada 2")],
    )
    def test_invalid_identity(self, account_service, store, email, name):
        with pytest.raises(InvalidInputError):
            account_service.register_user("u1", email, name)
        assert store.get(user_path("u1")) is None


class TestUpdateProfile:
    def test_merges_sanitized_fields(self, account_service, store, create_user):
        create_user("u1", socialLinks={"twitter": "https://twitter.com/old"})

        written = account_service.update_profile(
            "u1",
            {
                "bio": "  I test things. ",
                "socialLinks": {"github": "https://github.com/ada"},
            },
            acting_id="u1",
        )

        assert written["bio"] == "I test things."
        user = store.get(user_path("u1"))
        assert user["bio"] == "I test things."
        assert user["socialLinks"] == {
            "twitter": "https://twitter.com/old",
            "github": "https://github.com/ada",
        }
        assert user["earnedMoney"] == 0

    def test_ledger_fields_not_editable(self, account_service, create_user):
        create_user("u1")
        with pytest.raises(InvalidInputError):
            account_service.update_profile("u1", {"earnedMoney": 1_000_000})

    def test_invalid_field_rejected(self, account_service, store, create_user):
        create_user("u1", bio="before")
        with pytest.raises(InvalidInputError):
            account_service.update_profile("u1", {"bio": "x" * 201})
        assert store.get(user_path("u1"))["bio"] == "before"

    @pytest.mark.parametrize("changes", [{}, None, ["bio"]])
    def test_changes_must_be_non_empty_dict(self, account_service, changes):
        with pytest.raises(InvalidInputError):
            account_service.update_profile("u1", changes)

    def test_missing_user(self, account_service, store):
        with pytest.raises(EntityNotFoundError):
            account_service.update_profile("u1", {"bio": "hello"})
        assert store.get(user_path("u1")) is None

    def test_other_user_denied(self, account_service, create_user):
        create_user("u1")
        create_user("u2")
        with pytest.raises(UnauthorizedError):
            account_service.update_profile("u1", {"bio": "hacked"}, acting_id="u2")

    def test_admin_may_edit(self, account_service, store, admin, create_user):
        create_user("u1")
        account_service.update_profile("u1", {"bio": "Reviewed"}, acting_id=admin)
        assert store.get(user_path("u1"))["bio"] == "Reviewed"

    def test_invalidates_profile_and_leaderboard(self, account_service, cache, create_user):
        create_user("u1")
        for key in ("user:u1", "admin:data", "leaderboard:weekly", "campaigns:all"):
            cache.set(key, {"stale": True})

        account_service.update_profile("u1", {"fullName": "Ada Lovelace"})

        assert cache.get_cache_keys() == ["campaigns:all"]


class TestMigrations:
    def test_backfills_missing_fields(self, account_service, store):
        store.set(user_path("u1"), {"uid": "u1", "email": "u1@example.com", "fullName": "Old User"})
        store.set(wallet_path("u1"), {"earnedBalance": 5})

        counts = account_service.run_migrations()

        assert counts == {"users": 10, "wallets": 3}
        user = store.get(user_path("u1"))
        assert user["role"] == "user"
        assert user["socialLinks"] == {}
        assert user["fullName"] == "Old User"
        assert store.get(wallet_path("u1")) == {
            "earnedBalance": 5,
            "addedBalance": 0,
            "pendingAddMoney": 0,
            "totalWithdrawn": 0,
        }

    def test_second_run_writes_nothing(self, account_service, store):
        store.set(user_path("u1"), {"uid": "u1"})
        store.set(wallet_path("u1"), {})
        account_service.run_migrations()

        assert account_service.run_migrations() == {"users": 0, "wallets": 0}

    def test_existing_values_kept(self, account_service, store, create_user):
        create_user("u1", role="admin", earnedMoney=75)

        account_service.migrate_user_profiles()

        user = store.get(user_path("u1"))
        assert user["role"] == "admin"
        assert user["earnedMoney"] == 75
        assert user["bio"] == ""

    def test_non_document_entries_skipped(self, account_service, store, captured_logs):
        store.set(user_path("broken"), "not a profile")
        assert account_service.migrate_user_profiles() == 0
        assert any(r["message"] == "migration_skipped_document" for r in captured_logs())

    def test_empty_store(self, account_service):
        assert account_service.run_migrations() == {"users": 0, "wallets": 0}

    def test_writes_clear_cache(self, account_service, store, cache):
        store.set(user_path("u1"), {"uid": "u1"})
        cache.set("user:u1", {"uid": "u1"})
        account_service.migrate_user_profiles()
        assert cache.get_cache_keys() == []
