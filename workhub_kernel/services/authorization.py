"""
AuthorizationChecker -- may an acting identity touch a target's resources?

Rules:
    - Arguments must be non-empty ids and ``required_role`` either None or
      ``"admin"``; anything else is denied before any lookup.
    - ``required_role == "admin"``: the acting user's record must have
      ``role == "admin"`` and must not be blocked.  Acting on yourself does
      not bypass this.
    - Otherwise acting on yourself is allowed, and acting on anyone else
      falls back to the admin rule.

``authorize`` never raises.  A missing or malformed user record, or a store
failure while reading it, is logged and denies.  ``require`` is the raising
form used by the ledger operations.
"""

from __future__ import annotations

from typing import Any

from workhub_kernel.db.store import DocumentStore, user_path
from workhub_kernel.domain.records import UserRole
from workhub_kernel.domain.validation import validate_authorization_params
from workhub_kernel.exceptions import UnauthorizedError
from workhub_kernel.logging_config import get_logger

logger = get_logger("services.authorization")


class AuthorizationChecker:
    def __init__(self, store: DocumentStore):
        self._store = store

    def authorize(
        self, acting_id: Any, target_id: Any, required_role: str | None = None
    ) -> bool:
        if not validate_authorization_params(acting_id, target_id, required_role):
            logger.warning(
                "authorization_params_invalid",
                extra={"acting_id": acting_id, "target_id": target_id},
            )
            return False

        if required_role == UserRole.ADMIN.value:
            return self.is_admin(acting_id)
        if acting_id == target_id:
            return True
        return self.is_admin(acting_id)

    def is_admin(self, uid: str) -> bool:
        """True iff ``users/{uid}`` has the admin role and is not blocked."""
        try:
            record = self._store.get(user_path(uid))
        except Exception:
            logger.error(
                "authorization_lookup_failed", extra={"uid": uid}, exc_info=True
            )
            return False

        if not isinstance(record, dict):
            return False
        return record.get("role") == UserRole.ADMIN.value and not record.get("isBlocked")

    def require(
        self,
        acting_id: Any,
        target_id: Any,
        action: str,
        required_role: str | None = None,
    ) -> None:
        """
        Raises:
            UnauthorizedError: ``authorize`` returned False.
        """
        if not self.authorize(acting_id, target_id, required_role):
            logger.warning(
                "authorization_denied",
                extra={
                    "acting_id": acting_id,
                    "target_id": target_id,
                    "action": action,
                },
            )
            raise UnauthorizedError(str(acting_id), str(target_id), action)
