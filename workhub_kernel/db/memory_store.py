"""
Module: workhub_kernel.db.memory_store
Responsibility: Thread-safe in-memory ``DocumentStore`` used by tests, local
    tooling and any deployment that does not need persistence.
Architecture position: Kernel > DB.

Concurrency model:
    Every document carries a version drawn from a store-wide counter.  The
    lock is held only to snapshot and to compare-and-swap; the transaction
    function runs outside it, so a slow or re-entrant function never blocks
    other writers.  A version mismatch at commit time means another writer
    got there first and the cycle is retried.  A transaction on a path inside
    a document is checked against the version of the whole document.
"""

from __future__ import annotations

import copy
import threading
from typing import Any

from workhub_kernel.db.store import (
    ABORT,
    DEFAULT_MAX_RETRIES,
    DocumentStore,
    TransactFn,
    TransactResult,
    ancestor_paths,
    document_path,
    is_collection_path,
    nest,
    normalize_path,
    pluck,
    relative_segments,
    splice,
    split_documents,
)
from workhub_kernel.exceptions import InvalidInputError, OptimisticLockError
from workhub_kernel.logging_config import get_logger

logger = get_logger("db.memory_store")


class InMemoryDocumentStore(DocumentStore):
    """
    Path -> (version, document) map guarded by a single lock.

    Args:
        documents: Optional initial values keyed by path.  Collection paths
            such as ``"campaigns"`` are split into one document per entry.
        max_retries: Attempts ``transact`` makes before giving up.
    """

    def __init__(
        self,
        documents: dict[str, Any] | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.max_retries = max_retries
        self._docs: dict[str, tuple[int, Any]] = {}
        self._seq = 0
        self._lock = threading.Lock()
        for path, value in (documents or {}).items():
            self.set(path, value)

    # -- reads ---------------------------------------------------------------

    def get(self, path: str) -> Any:
        path = normalize_path(path)
        prefix = path + "/"
        with self._lock:
            doc_path, inner = self._locate(path)
            if doc_path in self._docs:
                return copy.deepcopy(pluck(self._docs[doc_path][1], inner))
            children = [
                (key[len(prefix):], copy.deepcopy(value))
                for key, (_, value) in self._docs.items()
                if key.startswith(prefix)
            ]
        return nest(children)

    def paths(self) -> list[str]:
        """Every path currently holding a document, sorted."""
        with self._lock:
            return sorted(self._docs)

    # -- writes --------------------------------------------------------------

    def set(self, path: str, value: Any) -> None:
        path = normalize_path(path)
        value = copy.deepcopy(value)
        with self._lock:
            doc_path, inner = self._locate(path)
            if inner:
                self._write(doc_path, splice(self._document(doc_path), inner, value))
                return
            documents = split_documents(path, value)
            self._drop_subtree(path)
            for key, document in documents:
                self._write(key, document)

    def delete(self, path: str) -> None:
        path = normalize_path(path)
        with self._lock:
            doc_path, inner = self._locate(path)
            if inner:
                if doc_path in self._docs:
                    self._write(doc_path, splice(self._document(doc_path), inner, None))
                return
            self._drop_subtree(path)

    def transact(self, path: str, fn: TransactFn) -> TransactResult:
        path = normalize_path(path)
        if is_collection_path(path):
            raise InvalidInputError("path", "transactions run on a single document", path)
        current: Any = None

        for attempt in range(1, self.max_retries + 1):
            with self._lock:
                doc_path, inner = self._locate(path)
                version, document = self._docs.get(doc_path, (0, None))
                if version == 0 and not inner and self._has_descendants(path):
                    raise InvalidInputError(
                        "path", "holds several documents; transact on one of them", path
                    )
                current = copy.deepcopy(pluck(document, inner))

            proposed = fn(copy.deepcopy(current))
            if proposed is ABORT:
                logger.debug("transaction_aborted", extra={"path": path})
                return TransactResult(committed=False, value=current)

            with self._lock:
                unchanged = (
                    self._locate(path) == (doc_path, inner)
                    and self._docs.get(doc_path, (0, None))[0] == version
                )
                if unchanged:
                    self._write(
                        doc_path,
                        splice(self._document(doc_path), inner, copy.deepcopy(proposed)),
                    )
                    return TransactResult(committed=True, value=proposed)

            logger.debug(
                "transaction_conflict_retry",
                extra={"path": path, "attempt": attempt},
            )

        logger.warning(
            "transaction_retries_exhausted",
            extra={"path": path, "attempts": self.max_retries},
        )
        raise OptimisticLockError(path, self.max_retries)

    # -- internals (caller holds the lock) -----------------------------------

    def _locate(self, path: str) -> tuple[str, list[str]]:
        """The document holding ``path`` and the segments leading into it."""
        for candidate in (path, *ancestor_paths(path)):
            if candidate in self._docs:
                return candidate, relative_segments(candidate, path)
        home = document_path(path)
        return home, relative_segments(home, path)

    def _document(self, path: str) -> Any:
        return self._docs.get(path, (0, None))[1]

    def _has_descendants(self, path: str) -> bool:
        prefix = path + "/"
        return any(key.startswith(prefix) for key in self._docs)

    def _drop_subtree(self, path: str) -> None:
        prefix = path + "/"
        for key in [k for k in self._docs if k == path or k.startswith(prefix)]:
            del self._docs[key]

    def _write(self, path: str, value: Any) -> None:
        if value is None:
            self._docs.pop(path, None)
            return
        self._seq += 1
        self._docs[path] = (self._seq, value)
