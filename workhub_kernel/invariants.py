"""
Ledger Invariants Contract.

These bounds are structural law. They are enforced by the validators in
``workhub_kernel.domain.validation`` and re-checked inside every store
transaction before a write is allowed to commit. No configuration file
may override them.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the ledger operations."""

    WALLET_BOUNDS = "wallet_bounds"
    """Every wallet field is within [0, MAX_WALLET_BALANCE]."""

    CAMPAIGN_BUDGET = "campaign_budget"
    """0 <= remainingBudget <= totalBudget for every campaign."""

    SINGLE_APPLICATION = "single_application"
    """At most one work item per (worker, campaign)."""

    PENDING_TRANSITIONS = "pending_transitions"
    """Work items and money requests only leave the pending state once."""

    CACHE_COHERENCE = "cache_coherence"
    """Every mutating operation invalidates the cache keys it touched."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

MAX_WALLET_BALANCE = 10_000_000
MAX_CAMPAIGN_DEDUCTION = 10_000_000

MIN_TOTAL_WORKERS = 1
MAX_TOTAL_WORKERS = 10_000
MIN_REWARD_PER_WORKER = 0.5
MAX_REWARD = 10_000

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000

MAX_TRANSACTION_AMOUNT = 100_000

MIN_ADD_MONEY = 10
MAX_ADD_MONEY = 100_000
MIN_WITHDRAWAL = 500
MAX_WITHDRAWAL = 50_000

# Records stamped slightly in the future are tolerated (client clock drift).
CLOCK_DRIFT_TOLERANCE_MS = 60_000

CAMPAIGNS_PER_HOUR_LIMIT = 2
LEADERBOARD_SIZE = 50
