"""Document store adapters: interface, in-memory and SQLAlchemy-backed."""

from workhub_kernel.db.memory_store import InMemoryDocumentStore
from workhub_kernel.db.store import ABORT, DocumentStore, TransactResult

__all__ = [
    "ABORT",
    "DocumentStore",
    "InMemoryDocumentStore",
    "TransactResult",
]
