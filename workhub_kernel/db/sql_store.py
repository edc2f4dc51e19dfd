"""
Module: workhub_kernel.db.sql_store
Responsibility: ``DocumentStore`` backed by a relational database through
    SQLAlchemy.  Each document is one ``DocumentRow``; reads and writes below
    a document go through its row.
Architecture position: Kernel > DB.  Uses the module-level engine from
    ``db.engine``; call ``init_engine_from_url`` and ``create_tables`` first.

Concurrency model:
    ``transact`` reads the row holding the path and its version in one short
    session, runs the transaction function with no session open, then commits
    in a second session with ``UPDATE ... WHERE path = :p AND version = :v``.
    Zero rows updated, or a duplicate-key error when two writers race to
    create the same document, means the snapshot went stale and the cycle is
    retried.

Failure modes:
    - OptimisticLockError when retries are exhausted.
    - InvalidInputError for a transaction on a collection path.
    - SQLAlchemyError from the driver propagates unchanged.
"""

from __future__ import annotations

import copy
from typing import Any

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workhub_kernel.db.base import DocumentRow
from workhub_kernel.db.engine import session_scope
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

logger = get_logger("db.sql_store")


def _subtree(path: str):
    return or_(
        DocumentRow.path == path,
        DocumentRow.path.startswith(path + "/", autoescape=True),
    )


def _locate(session: Session, path: str) -> tuple[DocumentRow | None, str, list[str]]:
    """The row holding ``path`` (None if absent), its path, and the segments inside it."""
    candidates = [path, *ancestor_paths(path)]
    rows = session.execute(
        select(DocumentRow).where(DocumentRow.path.in_(candidates))
    ).scalars().all()
    if rows:
        row = max(rows, key=lambda r: len(r.path))
        return row, row.path, relative_segments(row.path, path)
    home = document_path(path)
    return None, home, relative_segments(home, path)


def _save(session: Session, row: DocumentRow | None, path: str, value: Any) -> None:
    if value is None:
        if row is not None:
            session.delete(row)
    elif row is None:
        session.add(DocumentRow(path=path, value=value, version=1))
    else:
        row.value = value
        row.version = row.version + 1


class SqlDocumentStore(DocumentStore):
    def __init__(self, *, max_retries: int = DEFAULT_MAX_RETRIES):
        self.max_retries = max_retries

    def get(self, path: str) -> Any:
        path = normalize_path(path)
        prefix = path + "/"
        with session_scope() as session:
            row, _, inner = _locate(session, path)
            if row is not None:
                return copy.deepcopy(pluck(row.value, inner))
            rows = session.execute(
                select(DocumentRow.path, DocumentRow.value)
                .where(DocumentRow.path.startswith(prefix, autoescape=True))
                .order_by(DocumentRow.path)
            ).all()
            return nest((p[len(prefix):], copy.deepcopy(v)) for p, v in rows)

    def set(self, path: str, value: Any) -> None:
        path = normalize_path(path)
        value = copy.deepcopy(value)
        with session_scope() as session:
            row, doc_path, inner = _locate(session, path)
            if inner:
                document = row.value if row is not None else None
                _save(session, row, doc_path, splice(document, inner, value))
                return
            documents = split_documents(path, value)
            existing = {
                r.path: r
                for r in session.execute(select(DocumentRow).where(_subtree(path))).scalars()
            }
            for key, document in documents:
                _save(session, existing.pop(key, None), key, document)
            for stale in existing.values():
                session.delete(stale)

    def delete(self, path: str) -> None:
        path = normalize_path(path)
        with session_scope() as session:
            row, doc_path, inner = _locate(session, path)
            if inner:
                if row is not None:
                    _save(session, row, doc_path, splice(row.value, inner, None))
                return
            session.execute(delete(DocumentRow).where(_subtree(path)))

    def transact(self, path: str, fn: TransactFn) -> TransactResult:
        path = normalize_path(path)
        if is_collection_path(path):
            raise InvalidInputError("path", "transactions run on a single document", path)

        for attempt in range(1, self.max_retries + 1):
            with session_scope() as session:
                row, doc_path, inner = _locate(session, path)
                if row is None and not inner and _has_descendants(session, path):
                    raise InvalidInputError(
                        "path", "holds several documents; transact on one of them", path
                    )
                version = row.version if row is not None else 0
                document = copy.deepcopy(row.value) if row is not None else None

            current = pluck(document, inner)
            proposed = fn(copy.deepcopy(current))
            if proposed is ABORT:
                logger.debug("transaction_aborted", extra={"path": path})
                return TransactResult(committed=False, value=current)

            replacement = splice(document, inner, copy.deepcopy(proposed))
            try:
                if self._compare_and_swap(doc_path, version, replacement):
                    return TransactResult(committed=True, value=proposed)
            except IntegrityError:
                # Another writer inserted the row first.
                pass

            logger.debug(
                "transaction_conflict_retry",
                extra={"path": path, "attempt": attempt},
            )

        logger.warning(
            "transaction_retries_exhausted",
            extra={"path": path, "attempts": self.max_retries},
        )
        raise OptimisticLockError(path, self.max_retries)

    def _compare_and_swap(self, path: str, version: int, value: Any) -> bool:
        with session_scope() as session:
            if version == 0:
                if value is None:
                    return session.get(DocumentRow, path) is None
                session.add(DocumentRow(path=path, value=value, version=1))
                session.flush()
                return True

            where = (DocumentRow.path == path) & (DocumentRow.version == version)
            if value is None:
                result = session.execute(delete(DocumentRow).where(where))
            else:
                result = session.execute(
                    update(DocumentRow)
                    .where(where)
                    .values(value=value, version=version + 1)
                )
            return result.rowcount == 1


def _has_descendants(session: Session, path: str) -> bool:
    return session.execute(
        select(exists().where(DocumentRow.path.startswith(path + "/", autoescape=True)))
    ).scalar()
