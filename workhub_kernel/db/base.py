"""
Module: workhub_kernel.db.base
Responsibility: Declarative base and the single ORM table backing the
    SQL document store.
Architecture position: Kernel > DB.  MUST NOT import from services/,
    selectors/ or domain/.

Invariants enforced:
    - One row per document path; the path is the primary key.
    - ``version`` increases on every write to a row and is the only thing the
      compare-and-swap in ``sql_store`` looks at.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from typing import Any, ClassVar

from sqlalchemy import JSON, BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MAX_PATH_LENGTH = 512


class Base(DeclarativeBase):
    """
    Declarative base for the kernel's tables.

    Guarantees:
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }


class DocumentRow(Base):
    """One stored document: its path, JSON value and CAS version."""

    __tablename__ = "documents"

    path: Mapped[str] = mapped_column(String(MAX_PATH_LENGTH), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentRow {self.path} v{self.version}>"
