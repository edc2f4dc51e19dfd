"""
AccountService -- user profile lifecycle and backfill migrations.

Responsibility:
    Creates the profile and zero wallet for a new user, applies validated
    and sanitized profile edits, and backfills fields that older profile and
    wallet documents are missing.

Architecture position:
    Kernel > Services.  Identity-provider sign-up itself is out of scope;
    callers hand in the uid the provider issued.

Failure modes:
    - InvalidInputError for malformed emails, names or profile fields.
    - Migrations are idempotent: a second run writes nothing.
"""

from __future__ import annotations

from typing import Any

from workhub_kernel.db.store import ABORT, join_path, user_path, wallet_path
from workhub_kernel.domain.profile import (
    is_valid_email,
    is_valid_name,
    validate_and_sanitize_profile,
)
from workhub_kernel.domain.records import WALLET_FIELDS, UserRole, WalletBalance
from workhub_kernel.exceptions import EntityNotFoundError, InvalidInputError
from workhub_kernel.logging_config import get_logger
from workhub_kernel.services.base import BaseService, require_id
from workhub_kernel.services.read_cache import ADMIN_DATA_KEY

logger = get_logger("services.account_service")

EDITABLE_PROFILE_FIELDS = ("fullName", "bio", "profileImage", "socialLinks")


def profile_defaults(now_ms: int) -> dict[str, Any]:
    """Fields every profile document is expected to carry, with their defaults."""
    return {
        "totalWithdrawn": 0,
        "earnedMoney": 0,
        "addedMoney": 0,
        "approvedWorks": 0,
        "role": UserRole.USER.value,
        "isBlocked": False,
        "bio": "",
        "socialLinks": {},
        "createdAt": now_ms,
        "profileImage": None,
    }


class AccountService(BaseService):
    def register_user(self, uid: str, email: str, full_name: str) -> dict[str, Any] | None:
        """
        Create ``users/{uid}`` and ``wallets/{uid}``.

        Returns:
            The new profile, or None if ``uid`` already has one.
        """
        require_id("uid", uid)
        if not is_valid_email(email):
            raise InvalidInputError("email", "must be a valid email address", email)
        if not is_valid_name(full_name):
            raise InvalidInputError(
                "full_name",
                "must be 2-50 letters, spaces, hyphens or apostrophes",
                full_name,
            )

        profile = {
            "uid": uid,
            "email": email,
            "fullName": full_name.strip(),
            **profile_defaults(self.clock.now_ms()),
        }

        with self._operation("register_user", user_id=uid):
            created = self.store.transact(
                user_path(uid), lambda current: profile if current is None else ABORT
            )
            if not created:
                logger.info("user_already_registered", extra={"uid": uid})
                return None
            self.store.transact(
                wallet_path(uid),
                lambda current: WalletBalance.zero() if current is None else ABORT,
            )
            self.cache.clear_user_cache(uid)
            self.cache.clear(ADMIN_DATA_KEY)
            logger.info("user_registered", extra={"uid": uid})
            return created.value

    def update_profile(
        self,
        uid: str,
        changes: dict[str, Any],
        acting_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Validate, sanitize and merge profile edits.

        Only ``fullName``, ``bio``, ``profileImage`` and ``socialLinks`` may be
        edited; balances, counters and role are owned by the ledger.

        Returns:
            The sanitized fields that were written.

        Raises:
            InvalidInputError: unknown fields, or any field failing validation.
            EntityNotFoundError: the user has no profile.
        """
        require_id("uid", uid)
        if not isinstance(changes, dict) or not changes:
            raise InvalidInputError("changes", "must be a non-empty dict")
        unknown = sorted(set(changes) - set(EDITABLE_PROFILE_FIELDS))
        if unknown:
            raise InvalidInputError("changes", f"fields not editable: {', '.join(unknown)}")
        self._authorize(acting_id, uid, "update_profile")

        result, sanitized = validate_and_sanitize_profile(changes)
        if not result:
            raise InvalidInputError("profile", ", ".join(result.codes))

        def merge(current: Any) -> Any:
            if not isinstance(current, dict):
                return ABORT
            merged = {**current, **sanitized}
            if "socialLinks" in sanitized:
                links = current.get("socialLinks")
                merged["socialLinks"] = {
                    **(links if isinstance(links, dict) else {}),
                    **sanitized["socialLinks"],
                }
            return merged

        with self._operation("update_profile", user_id=uid):
            written = self.store.transact(user_path(uid), merge)
            if not written:
                raise EntityNotFoundError("user", user_path(uid))
            self.cache.invalidate_user_cache(uid)
            self.cache.clear(ADMIN_DATA_KEY)
            self.cache.invalidate_cache("leaderboard:")
            logger.info("profile_updated", extra={"uid": uid, "fields": sorted(sanitized)})
            return sanitized

    # -----------------------------------------------------------------------
    # Migrations
    # -----------------------------------------------------------------------

    def migrate_user_profiles(self) -> int:
        """Add missing profile fields with their defaults. Returns fields written."""
        defaults = profile_defaults(self.clock.now_ms())
        return self._backfill("users", defaults)

    def migrate_wallets(self) -> int:
        """Add missing wallet fields as zero. Returns fields written."""
        return self._backfill("wallets", {field: 0 for field in WALLET_FIELDS})

    def run_migrations(self) -> dict[str, int]:
        counts = {
            "users": self.migrate_user_profiles(),
            "wallets": self.migrate_wallets(),
        }
        logger.info("migrations_completed", extra=counts)
        return counts

    def _backfill(self, collection: str, defaults: dict[str, Any]) -> int:
        with self._operation(f"migrate_{collection}"):
            documents = self.store.get(collection) or {}
            written = 0
            for key, document in documents.items():
                if not isinstance(document, dict):
                    logger.warning(
                        "migration_skipped_document",
                        extra={"collection": collection, "key": key},
                    )
                    continue
                added: list[str] = []
                if self.store.transact(join_path(collection, key), _filler(defaults, added)):
                    written += len(added)
                    logger.info(
                        "migration_fields_added",
                        extra={"collection": collection, "key": key, "fields": list(added)},
                    )
            if written:
                self.cache.clear_all()
            return written


def _filler(defaults: dict[str, Any], added: list[str]):
    """Transaction function adding the keys of ``defaults`` that are missing."""

    def fill(current: Any) -> Any:
        added.clear()
        if not isinstance(current, dict):
            return ABORT
        missing = {k: v for k, v in defaults.items() if k not in current}
        if not missing:
            return ABORT
        added.extend(missing)
        return {**current, **missing}

    return fill
