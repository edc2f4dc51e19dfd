"""
Engine and session handling for the SQL document store.

One engine per process, created by :func:`init_engine_from_url` (normally
via ``bootstrap.build_store``) and replaced by calling it again.  Any
SQLAlchemy URL works.  SQLite, which the tests use, is opened with
``check_same_thread`` off; other backends get a pre-pinged QueuePool.

Consistency does not depend on the isolation level: ``sql_store`` does its
own version compare-and-swap on every write.

``get_engine`` and ``session_scope`` raise RuntimeError until an engine
exists.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from workhub_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# Pool settings for server databases.
SERVER_POOL: dict[str, Any] = {
    "poolclass": QueuePool,
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}


def init_engine_from_url(database_url: str, echo: bool = False, **pool: Any) -> Engine:
    """
    Create the process engine for ``database_url`` and return it.

    Keyword arguments override :data:`SERVER_POOL` and are ignored for
    SQLite.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    else:
        options = {**SERVER_POOL, **pool}

    _engine = create_engine(database_url, echo=echo, **options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    """Raises RuntimeError if init_engine_from_url() has not run."""
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One unit of work: commit on normal exit, roll back and re-raise on error.

        with session_scope() as session:
            session.add(row)
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    session = _SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the document table if it does not exist."""
    from workhub_kernel.db.base import Base

    Base.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget it. Tests call this between databases."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
