"""
Configuration Loader (``reagent_config.loader``).

Loads a YAML settings file and parses it into ``reagent_config.schema``
dataclasses.  The single public entry point for runtime config is
``reagent_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from reagent_config.schema import DatabaseSettings, ExpiryThresholds, LedgerSettings

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    settings = DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
        lock_timeout_ms=int(data.get("lock_timeout_ms", 5000)),
    )
    if settings.lock_timeout_ms <= 0:
        raise ValueError("database.lock_timeout_ms must be positive")
    return settings


def parse_expiry(data: dict[str, Any]) -> ExpiryThresholds:
    thresholds = ExpiryThresholds(
        critical_days=int(data.get("critical_days", 7)),
        warning_days=int(data.get("warning_days", 30)),
    )
    if not 0 <= thresholds.critical_days <= thresholds.warning_days:
        raise ValueError(
            "expiry thresholds must satisfy 0 <= critical_days <= warning_days"
        )
    return thresholds


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse a full settings mapping."""
    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"unknown log_level: {log_level}")

    history_limit = int(data.get("history_limit", 100))
    if history_limit < 1:
        raise ValueError("history_limit must be positive")

    return LedgerSettings(
        database=parse_database(data["database"]),
        expiry=parse_expiry(data.get("expiry") or {}),
        history_limit=history_limit,
        log_level=log_level,
    )
