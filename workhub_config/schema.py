"""
WorkhubConfig schema.

The runtime settings of a kernel deployment: which document store backs it,
how the read cache is sized and how verbose logging is.  YAML files are
parsed into these types by the loader.

Ledger limits (wallet bound, reward range, request bounds) are not settings;
they live in ``workhub_kernel.invariants``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class StoreBackend(str, Enum):
    MEMORY = "memory"
    SQL = "sql"


@dataclass(frozen=True)
class CacheSettings:
    """Read cache sizing."""

    ttl_seconds: float = 300
    max_entries: int = 100


@dataclass(frozen=True)
class StoreSettings:
    """Which document store to build and how to reach it."""

    backend: StoreBackend = StoreBackend.MEMORY
    database_url: str | None = None  # required when backend is sql
    max_transaction_retries: int = 25
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class WorkhubConfig:
    """Complete runtime configuration."""

    cache: CacheSettings = field(default_factory=CacheSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None  # file the config was loaded from
