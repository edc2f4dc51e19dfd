"""
Module: workhub_kernel.db.store
Responsibility: The document store interface every ledger operation is written
    against, plus the path helpers that name each collection.
Architecture position: Kernel > DB.  Lowest-level import target of the
    kernel besides exceptions and logging.  MUST NOT import from services/,
    selectors/ or domain/.

Data model:
    A tree of slash-separated paths whose leaves are JSON-like values.  The
    tree is stored as documents: each known collection keeps one document
    per entry at a fixed depth (``users/{uid}``, ``works/{uid}/{work_id}``,
    see ``DOCUMENT_DEPTHS``).  Any path can be read or written:

    - A path inside a document reads or replaces that part of it, so
      ``get("users/u1/bio")`` plucks a field and ``set("users/u1/bio", x)``
      rewrites the ``users/u1`` document.
    - A collection path reads as the nested dict of the documents below
      it, so ``get("works")`` returns ``{uid: {work_id: work}}``.  Writing
      a dict there replaces the whole collection, one document per entry.
    - Writing ``None`` deletes.  A dict left empty by a delete disappears.

    Paths under other roots are documents where they are first written, and
    deeper paths resolve into the nearest stored document above them.

Invariants enforced:
    - Single-path atomicity: ``transact`` commits only if no other write to
      the same path landed between its read and its commit.  It retries the
      read-compute-write cycle up to ``max_retries`` times.
    - Transaction functions receive a private copy of the current value;
      mutating it never leaks into the store unless returned.

Failure modes:
    - InvalidInputError for empty paths, illegal path segments, a non-dict
      written at a collection path, or a transaction on a collection.
    - OptimisticLockError when ``transact`` exhausts its retries.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from uuid import uuid4

from workhub_kernel.exceptions import InvalidInputError

DEFAULT_MAX_RETRIES = 25


class _AbortType:
    """Type of the ``ABORT`` sentinel."""

    _instance: _AbortType | None = None

    def __new__(cls) -> _AbortType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"

    def __bool__(self) -> bool:
        return False


# Returned by a transaction function to leave the document untouched.
ABORT = _AbortType()


@dataclass(frozen=True)
class TransactResult:
    """
    Outcome of ``DocumentStore.transact``.

    ``value`` is the committed document when ``committed`` is True, otherwise
    the value the last attempt observed.  Truthiness follows ``committed``.
    """

    committed: bool
    value: Any = None

    def __bool__(self) -> bool:
        return self.committed


TransactFn = Callable[[Any], Any]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_ILLEGAL_SEGMENT = re.compile(r"[.#$\[\]]")


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and reject empty or illegal segments."""
    if not isinstance(path, str):
        raise InvalidInputError("path", "must be a string", path)
    segments = path.strip("/").split("/")
    for segment in segments:
        if not segment or _ILLEGAL_SEGMENT.search(segment):
            raise InvalidInputError("path", f"illegal segment {segment!r}", path)
    return "/".join(segments)


def join_path(*segments: str) -> str:
    return normalize_path("/".join(str(s) for s in segments))


def user_path(uid: str) -> str:
    return join_path("users", uid)


def wallet_path(uid: str) -> str:
    return join_path("wallets", uid)


def transactions_path(uid: str, tx_id: str | None = None) -> str:
    if tx_id is None:
        return join_path("transactions", uid)
    return join_path("transactions", uid, tx_id)


def campaign_path(campaign_id: str) -> str:
    return join_path("campaigns", campaign_id)


def works_path(uid: str) -> str:
    return join_path("works", uid)


def work_path(uid: str, work_id: str) -> str:
    return join_path("works", uid, work_id)


def request_path(collection: str, request_id: str) -> str:
    return join_path(collection, request_id)


def nest(entries: Iterable[tuple[str, Any]]) -> dict[str, Any] | None:
    """
    Build a nested dict from ``(relative_path, value)`` pairs.

    Returns None when there are no entries, mirroring a missing document.
    """
    tree: dict[str, Any] = {}
    for relative, value in entries:
        *parents, leaf = relative.split("/")
        node = tree
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
    return tree or None


def new_push_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Documents within the tree
# ---------------------------------------------------------------------------

# Number of path segments at which each collection stores its documents.
DOCUMENT_DEPTHS: dict[str, int] = {
    "users": 2,
    "wallets": 2,
    "transactions": 3,
    "campaigns": 2,
    "works": 3,
    "adminRequests": 3,
}


def _depth(path: str) -> int | None:
    return DOCUMENT_DEPTHS.get(path.split("/", 1)[0])


def is_collection_path(path: str) -> bool:
    """True for a path above the document level of a known collection."""
    depth = _depth(path)
    return depth is not None and path.count("/") + 1 < depth


def document_path(path: str) -> str:
    """Path of the document that holds ``path`` in a known collection, else ``path``."""
    depth = _depth(path)
    segments = path.split("/")
    if depth is None or len(segments) <= depth:
        return path
    return "/".join(segments[:depth])


def ancestor_paths(path: str) -> list[str]:
    """Proper ancestors of ``path``, nearest first."""
    segments = path.split("/")
    return ["/".join(segments[:i]) for i in range(len(segments) - 1, 0, -1)]


def relative_segments(base: str, path: str) -> list[str]:
    """Segments leading from ``base`` down to ``path``; ``base`` must be ``path`` or above it."""
    if base == path:
        return []
    return path[len(base) + 1:].split("/")


def pluck(value: Any, segments: list[str]) -> Any:
    """The part of ``value`` at ``segments``, or None."""
    for segment in segments:
        if not isinstance(value, dict):
            return None
        value = value.get(segment)
    return value


def splice(document: Any, segments: list[str], value: Any) -> Any:
    """
    Copy of ``document`` with ``value`` placed at ``segments``.

    ``None`` removes the entry; dicts emptied that way are removed too, and
    an empty result is None.  Non-dict values along the way are replaced.
    """
    if not segments:
        return value
    head, *rest = segments
    node = dict(document) if isinstance(document, dict) else {}
    child = splice(node.get(head), rest, value)
    if child is None:
        node.pop(head, None)
    else:
        node[head] = child
    return node or None


def split_documents(path: str, value: Any) -> list[tuple[str, Any]]:
    """
    ``(document_path, document)`` pairs a write of ``value`` at ``path`` stores.

    Raises:
        InvalidInputError: a collection path is given something other than
            a dict of entries.
    """
    if value is None:
        return []
    if not is_collection_path(path):
        return [(path, value)]
    if not isinstance(value, dict):
        raise InvalidInputError("value", "a collection holds a dict of entries", path)
    documents: list[tuple[str, Any]] = []
    for key, child in value.items():
        documents.extend(split_documents(join_path(path, key), child))
    return documents


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class DocumentStore(ABC):
    """
    Key-value document store with per-path optimistic transactions.

    Implementations provide ``get``, ``set``, ``delete`` and ``transact``;
    ``update`` and ``push`` are built on top of them.
    """

    max_retries: int = DEFAULT_MAX_RETRIES

    @abstractmethod
    def get(self, path: str) -> Any:
        """Return a copy of the document at ``path``, or None."""

    @abstractmethod
    def set(self, path: str, value: Any) -> None:
        """Replace the document at ``path``. ``None`` deletes it."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove the document at ``path`` and every document below it."""

    @abstractmethod
    def transact(self, path: str, fn: TransactFn) -> TransactResult:
        """
        Atomically replace the document at ``path`` with ``fn(current)``.

        ``fn`` receives a copy of the current value (None if missing) and
        returns the new value, ``None`` to delete, or ``ABORT`` to leave the
        document as it is.  ``fn`` may be called more than once and must not
        have side effects beyond its return value.

        Raises:
            InvalidInputError: ``path`` is a collection rather than a single
                document or a part of one.
        """

    def update(self, path: str, changes: dict[str, Any]) -> None:
        """
        Merge ``changes`` into the document at ``path``.

        Keys mapped to None are removed.  A missing document is created.
        """
        if not isinstance(changes, dict):
            raise InvalidInputError("changes", "must be a dict", changes)

        def merge(current: Any) -> Any:
            merged = dict(current) if isinstance(current, dict) else {}
            for key, value in changes.items():
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
            return merged or None

        self.transact(path, merge)

    def push(self, path: str, value: Any) -> str:
        """Store ``value`` under a fresh child key of ``path``; return the key."""
        key = new_push_id()
        self.set(join_path(path, key), value)
        return key

    def exists(self, path: str) -> bool:
        return self.get(path) is not None
