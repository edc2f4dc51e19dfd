"""
LeaderboardSelector -- top workers by approved work in a rolling window.

For a period of 24 hours, 7 days or 30 days ending now, counts each user's
approved work items whose ``submittedAt`` falls in
``(now - window, now + CLOCK_DRIFT_TOLERANCE_MS]``.  Users with at least one
such item are ranked by that count, then by lifetime ``earnedMoney``, and the
top ``LEADERBOARD_SIZE`` are returned.  Results are cached per period under
``leaderboard:{period}``.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from workhub_kernel.db.store import DocumentStore
from workhub_kernel.domain.clock import Clock, SystemClock
from workhub_kernel.domain.records import LeaderboardEntry, LeaderboardPeriod, WorkStatus
from workhub_kernel.domain.validation import is_number
from workhub_kernel.exceptions import InvalidInputError
from workhub_kernel.invariants import CLOCK_DRIFT_TOLERANCE_MS, LEADERBOARD_SIZE
from workhub_kernel.logging_config import get_logger
from workhub_kernel.selectors.base import BaseSelector
from workhub_kernel.services.read_cache import ReadCache

logger = get_logger("selectors.leaderboard")


class LeaderboardSelector(BaseSelector):
    def __init__(self, store: DocumentStore, cache: ReadCache, clock: Clock | None = None):
        super().__init__(store, cache)
        self.clock = clock if clock is not None else SystemClock()

    def fetch_time_based_leaderboard(
        self, period: LeaderboardPeriod | str
    ) -> list[LeaderboardEntry]:
        try:
            period = LeaderboardPeriod(period)
        except ValueError:
            raise InvalidInputError(
                "period", "must be daily, weekly or monthly", period
            ) from None

        return self._read_through(
            f"leaderboard:{period.value}", lambda: self._compute(period)
        )

    def _compute(self, period: LeaderboardPeriod) -> list[LeaderboardEntry]:
        users = self.store.get("users")
        works = self.store.get("works")
        if not isinstance(users, dict) or not isinstance(works, dict):
            return []

        now = self.clock.now_ms()
        counts = count_approved_works(works, now - period.window_ms, now + CLOCK_DRIFT_TOLERANCE_MS)

        rows: list[tuple[str, dict[str, Any], int, float]] = []
        for uid, user in users.items():
            if not isinstance(user, dict) or counts[uid] <= 0:
                continue
            earned = user.get("earnedMoney")
            rows.append((uid, user, counts[uid], earned if is_number(earned) else 0))
        rows.sort(key=lambda row: (-row[2], -row[3], row[0]))

        leaderboard = [
            LeaderboardEntry(
                uid=uid,
                fullName=user["fullName"] if isinstance(user.get("fullName"), str) else "Unknown",
                profileImage=user["profileImage"] if isinstance(user.get("profileImage"), str) else None,
                approvedWorks=approved,
                earnedMoney=earned,
                rank=rank,
            )
            for rank, (uid, user, approved, earned) in enumerate(rows[:LEADERBOARD_SIZE], start=1)
        ]
        logger.debug(
            "leaderboard_computed",
            extra={"period": period.value, "entries": len(leaderboard)},
        )
        return leaderboard


def count_approved_works(works: dict[str, Any], after: int, until: int) -> Counter:
    """Approved work items per user with ``after < submittedAt <= until``."""
    counts: Counter = Counter()
    for uid, items in works.items():
        if not isinstance(items, dict):
            continue
        for item in items.values():
            if not isinstance(item, dict) or item.get("status") != WorkStatus.APPROVED.value:
                continue
            submitted = item.get("submittedAt")
            if is_number(submitted) and after < submitted <= until:
                counts[uid] += 1
    return counts
