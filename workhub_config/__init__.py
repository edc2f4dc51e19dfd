"""
workhub_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration -- sits beside ``workhub_kernel`` and is consumed by the
    composition root (``workhub_kernel.bootstrap``) and the scripts.  The
    services and selectors never import from ``workhub_config``; they receive
    already-built collaborators.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ConfigurationError`` -- the file is not valid YAML or holds an
      unknown key or invalid value.
"""

from __future__ import annotations

import os
from pathlib import Path

from workhub_config.loader import load_config
from workhub_config.schema import (
    CacheSettings,
    LoggingSettings,
    StoreBackend,
    StoreSettings,
    WorkhubConfig,
)
from workhub_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "WORKHUB_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> WorkhubConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``path`` if given, else the file named by the
    ``WORKHUB_CONFIG`` environment variable, else the packaged
    ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the selected file does not exist.
        ConfigurationError: If the file fails parsing or validation.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config = load_config(Path(path))

    _logger.info(
        "config_loaded",
        extra={
            "source": config.source,
            "store_backend": config.store.backend.value,
            "cache_ttl_seconds": config.cache.ttl_seconds,
            "cache_max_entries": config.cache.max_entries,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "CacheSettings",
    "LoggingSettings",
    "StoreBackend",
    "StoreSettings",
    "WorkhubConfig",
    "get_active_config",
]
