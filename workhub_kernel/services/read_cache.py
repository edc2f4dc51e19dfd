"""
ReadCache -- time-expiring, size-bounded read cache with request coalescing.

Responsibility:
    Fronts every store read made by the selectors.  Entries expire after a
    fixed TTL; at capacity the entry with the oldest write timestamp is
    evicted.  Concurrent misses for the same key share one in-flight fetch.

Architecture position:
    Kernel > Services.  Owned by the composition root (``Workhub``) and
    injected into every service and selector that reads or invalidates.

Invariants enforced:
    CACHE_COHERENCE -- every mutating ledger operation calls one of the
    invalidation helpers for each key it may have made stale.

Eviction policy:
    Entries are scanned in insertion order and the first entry with the
    strictly lowest write timestamp is evicted, so ties go to the earliest
    inserted key.  Rewriting a key that is already cached never evicts.
    This approximates LRU by write time; reads do not refresh an entry.

Coalescing:
    ``get_or_create_pending_request`` registers a ``concurrent.futures.Future``
    per key.  The first caller runs the factory; later callers block on the
    same future and receive the same value or the same exception.  The
    pending entry is dropped once the future settles.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from workhub_kernel.domain.clock import Clock, SystemClock
from workhub_kernel.logging_config import get_logger

logger = get_logger("services.read_cache")

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 100

USER_KEY_PREFIXES: tuple[str, ...] = ("user", "wallet", "transactions", "works")
ADMIN_DATA_KEY = "admin:data"


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: int
    expiry: int


class ReadCache:
    """
    Process-local key -> value cache.

    Args:
        clock: Time source for write timestamps and expiry.
        ttl_seconds: Lifetime of an entry.
        max_entries: Capacity before eviction.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._clock = clock if clock is not None else SystemClock()
        self._ttl_ms = int(ttl_seconds * 1000)
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, Future] = {}
        # Bumped on every clear so a fetch that started earlier cannot write back.
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_ms / 1000

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- entries ---------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Cached value, or None when absent or expired. Expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock.now_ms() > entry.expiry:
                del self._entries[key]
                logger.debug("cache_entry_expired", extra={"key": key})
                return None
            return entry.data

    def is_expired(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is None or self._clock.now_ms() > entry.expiry

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store_entry(key, value)

    def write_token(self, key: str) -> tuple[int, int]:
        """
        Snapshot of how many times ``key`` has been cleared.

        Take the token before reading the store and hand it back to
        :meth:`set_if_unchanged` once the value is loaded.
        """
        with self._lock:
            return (self._epoch, self._generations.get(key, 0))

    def set_if_unchanged(self, key: str, value: Any, token: tuple[int, int]) -> bool:
        """
        Cache ``value`` only if ``key`` was not cleared since ``token`` was taken.

        Returns:
            True when the entry was written.
        """
        with self._lock:
            if token != (self._epoch, self._generations.get(key, 0)):
                logger.debug("cache_write_skipped", extra={"key": key})
                return False
            self._store_entry(key, value)
            return True

    def _store_entry(self, key: str, value: Any) -> None:
        """Caller holds the lock."""
        now = self._clock.now_ms()
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict_oldest()
        self._entries[key] = CacheEntry(data=value, timestamp=now, expiry=now + self._ttl_ms)

    def _evict_oldest(self) -> None:
        """Caller holds the lock."""
        oldest_key: str | None = None
        oldest_time: int | None = None
        for key, entry in self._entries.items():
            if oldest_time is None or entry.timestamp < oldest_time:
                oldest_key, oldest_time = key, entry.timestamp
        if oldest_key is not None:
            del self._entries[oldest_key]
            logger.debug("cache_entry_evicted", extra={"key": oldest_key})

    def clear(self, key: str) -> None:
        """Remove one entry and any in-flight request for it."""
        with self._lock:
            self._entries.pop(key, None)
            self._pending.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pending.clear()
            self._generations.clear()
            self._epoch += 1
        logger.debug("cache_cleared")

    def get_cache_keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    # -- in-flight requests ----------------------------------------------------

    def is_fetching(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def get_pending(self, key: str) -> Future | None:
        with self._lock:
            return self._pending.get(key)

    def set_pending(self, key: str, future: Future) -> None:
        with self._lock:
            self._pending[key] = future

    def clear_pending(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)

    def get_or_create_pending_request(self, key: str, factory: Callable[[], T]) -> T:
        """
        Run ``factory`` unless a fetch for ``key`` is already in flight.

        Returns:
            The factory's result, shared by every caller that joined while
            the fetch was in flight.

        Raises:
            Whatever the factory raised, re-raised in every waiting caller.
        """
        with self._lock:
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future

        if not owner:
            logger.debug("cache_request_coalesced", extra={"key": key})
            return future.result()

        try:
            future.set_result(factory())
        except Exception as exc:
            future.set_exception(exc)
        finally:
            with self._lock:
                if self._pending.get(key) is future:
                    del self._pending[key]
        return future.result()

    # -- invalidation ----------------------------------------------------------

    def invalidate_cache(self, key_pattern: str) -> int:
        """
        Clear every cached or in-flight key containing ``key_pattern``.

        Returns the number of keys cleared.
        """
        with self._lock:
            keys = list(dict.fromkeys([*self._entries, *self._pending]))
        cleared = 0
        for key in keys:
            if key_pattern in key:
                self.clear(key)
                cleared += 1
        return cleared

    def invalidate_user_cache(self, uid: str) -> None:
        """Substring-invalidate the profile, wallet, transactions and works keys of ``uid``."""
        for prefix in USER_KEY_PREFIXES:
            self.invalidate_cache(f"{prefix}:{uid}")

    def clear_user_cache(self, uid: str) -> None:
        for prefix in USER_KEY_PREFIXES:
            self.clear(f"{prefix}:{uid}")
