"""
Configuration Loader (``workhub_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``workhub_config.schema``.  Runtime callers go through
``workhub_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Unknown sections and keys are rejected, so a typo never silently falls
  back to a default.
* Every value is type- and range-checked before the dataclass is built.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigurationError`` naming the file.
* Unknown key, wrong type or out-of-range value  -> ``ConfigurationError``
  naming the dotted key.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from workhub_config.schema import (
    CacheSettings,
    LoggingSettings,
    StoreBackend,
    StoreSettings,
    WorkhubConfig,
)
from workhub_kernel.exceptions import ConfigurationError

_SECTIONS = ("cache", "store", "logging")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or its top level
            is not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: tuple[str, ...]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(name, "must be a mapping")
    unknown = sorted(set(section) - set(allowed))
    if unknown:
        raise ConfigurationError(f"{name}.{unknown[0]}", "unknown setting")
    return section


def _positive(key: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(key, f"must be a number, got {value!r}")
    if kind is int and not float(value).is_integer():
        raise ConfigurationError(key, f"must be a whole number, got {value!r}")
    if value <= 0:
        raise ConfigurationError(key, f"must be positive, got {value!r}")
    return kind(value)


def parse_cache(data: dict[str, Any]) -> CacheSettings:
    section = _section(data, "cache", ("ttl_seconds", "max_entries"))
    defaults = CacheSettings()
    return CacheSettings(
        ttl_seconds=_positive(
            "cache.ttl_seconds", section.get("ttl_seconds", defaults.ttl_seconds), float
        ),
        max_entries=_positive(
            "cache.max_entries", section.get("max_entries", defaults.max_entries), int
        ),
    )


def parse_store(data: dict[str, Any]) -> StoreSettings:
    section = _section(
        data, "store", ("backend", "database_url", "max_transaction_retries", "echo")
    )
    defaults = StoreSettings()

    raw_backend = section.get("backend", defaults.backend.value)
    try:
        backend = StoreBackend(raw_backend)
    except ValueError:
        raise ConfigurationError(
            "store.backend", f"must be memory or sql, got {raw_backend!r}"
        ) from None

    database_url = section.get("database_url")
    if database_url is not None and not isinstance(database_url, str):
        raise ConfigurationError("store.database_url", "must be a string")
    if backend is StoreBackend.SQL and not database_url:
        raise ConfigurationError("store.database_url", "required for the sql backend")

    echo = section.get("echo", defaults.echo)
    if not isinstance(echo, bool):
        raise ConfigurationError("store.echo", "must be true or false")

    return StoreSettings(
        backend=backend,
        database_url=database_url,
        max_transaction_retries=_positive(
            "store.max_transaction_retries",
            section.get("max_transaction_retries", defaults.max_transaction_retries),
            int,
        ),
        echo=echo,
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    section = _section(data, "logging", ("level",))
    level = str(section.get("level", LoggingSettings().level)).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError("logging.level", f"unknown level {level!r}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any], source: str | None = None) -> WorkhubConfig:
    """
    Build a ``WorkhubConfig`` from an already-loaded mapping.

    Missing sections and keys take their dataclass defaults.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigurationError(unknown[0], "unknown section")
    return WorkhubConfig(
        cache=parse_cache(data),
        store=parse_store(data),
        logging=parse_logging(data),
        source=source,
    )


def load_config(path: Path) -> WorkhubConfig:
    return parse_config(load_yaml_file(path), source=str(path))
