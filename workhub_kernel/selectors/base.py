"""
Module: workhub_kernel.selectors.base
Responsibility: Abstract base class for read-only selectors.  Selectors are the
    read side of the kernel: cached, coalesced reads of store documents.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    the read cache and argument checks in services/.  Selectors NEVER write
    to the document store; the only state they touch is the read cache.

Invariants enforced:
    - Read-through: a fresh cache entry is returned as is; a miss goes to the
      store once per key no matter how many callers are waiting.
    - Absent documents are not cached, so the next read retries the store.
    - A value loaded before its key was invalidated is returned to the
      callers that asked for it but is not cached.

Failure modes:
    - Store errors are logged and re-raised unchanged to every caller that
      joined the in-flight read.
"""

from __future__ import annotations

from abc import ABC
from typing import Any, Callable

from workhub_kernel.db.store import DocumentStore
from workhub_kernel.logging_config import get_logger
from workhub_kernel.services.read_cache import ReadCache

logger = get_logger("selectors.base")


class BaseSelector(ABC):
    """
    Contract:
        Values returned from the cache are shared between callers and must
        be treated as read-only.
    """

    def __init__(self, store: DocumentStore, cache: ReadCache):
        self.store = store
        self.cache = cache

    def _read_through(
        self,
        key: str,
        loader: Callable[[], Any],
        default: Any = None,
    ) -> Any:
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        def fetch() -> Any:
            token = self.cache.write_token(key)
            try:
                value = loader()
            except Exception:
                logger.error("selector_fetch_failed", extra={"key": key}, exc_info=True)
                raise
            if value is None:
                return default
            self.cache.set_if_unchanged(key, value, token)
            return value

        return self.cache.get_or_create_pending_request(key, fetch)
