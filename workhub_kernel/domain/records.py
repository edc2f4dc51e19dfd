"""
Records -- entity vocabularies and value objects.

Responsibility:
    Names every enumerated value the ledger stores (roles, statuses, types)
    and provides the few value objects the kernel builds itself (zero
    wallet, leaderboard rows). Documents in the store stay plain dicts;
    these types describe what the dicts may contain.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

All enums subclass ``str`` so that members compare equal to, and serialize
as, the raw strings written to the document store.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    FAILED = "failed"
    COMPLETED = "completed"
    PAUSED = "paused"


class CampaignPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    ADD_MONEY = "add_money"
    WITHDRAWAL = "withdrawal"
    EARNING = "earning"
    CAMPAIGN_SPEND = "campaign_spend"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    # Written only by compensation; never accepted by the validator.
    FAILED = "failed"


class RequestType(str, Enum):
    ADD_MONEY = "add_money"
    WITHDRAWAL = "withdrawal"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaderboardPeriod(str, Enum):
    """Rolling window for the leaderboard, with its length in milliseconds."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def window_ms(self) -> int:
        day = 24 * 60 * 60 * 1000
        return {"daily": day, "weekly": 7 * day, "monthly": 30 * day}[self.value]


MONEY_DECIMALS = 2


def round_money(value: float) -> float:
    """Round a computed amount to whole cents before it is stored."""
    return round(value, MONEY_DECIMALS)


WALLET_FIELDS: tuple[str, ...] = (
    "earnedBalance",
    "addedBalance",
    "pendingAddMoney",
    "totalWithdrawn",
)


@dataclass(frozen=True)
class WalletBalance:
    """The four wallet fields. A missing wallet reads as all zeros."""

    earnedBalance: float = 0
    addedBalance: float = 0
    pendingAddMoney: float = 0
    totalWithdrawn: float = 0

    @classmethod
    def zero(cls) -> dict[str, Any]:
        return asdict(cls())

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> dict[str, Any]:
        """Overlay ``doc`` on a zero wallet. Extra keys are preserved."""
        merged = cls.zero()
        if doc:
            merged.update(doc)
        return merged


@dataclass(frozen=True)
class LeaderboardEntry:
    uid: str
    fullName: str
    profileImage: str | None
    approvedWorks: int
    earnedMoney: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def request_collection(request_type: RequestType | str) -> str:
    """Store collection holding money requests of ``request_type``."""
    if RequestType(request_type) is RequestType.ADD_MONEY:
        return "adminRequests/addMoney"
    return "adminRequests/withdrawals"
