"""
reagent_config -- single public entrypoint for reagent ledger configuration.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``reagent_ledger``.  The ledger MUST NEVER
    import from ``reagent_config``; ``reagent_config.bridges`` translates
    settings into ledger calls.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid settings.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from reagent_config.loader import load_yaml_file, parse_settings
from reagent_config.schema import DatabaseSettings, ExpiryThresholds, LedgerSettings

__all__ = [
    "DatabaseSettings",
    "ExpiryThresholds",
    "LedgerSettings",
    "get_active_config",
]

_logger = logging.getLogger("reagent_ledger.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

ENV_DATABASE_URL = "REAGENT_LEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "REAGENT_LEDGER_LOG_LEVEL"
ENV_LOCK_TIMEOUT_MS = "REAGENT_LEDGER_LOCK_TIMEOUT_MS"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Reads the YAML settings file, then applies environment overrides.

    Args:
        config_path: Settings file.  Defaults to reagent_config/sets/default.yaml.
        environ: Environment mapping.  Defaults to ``os.environ``.

    Returns:
        Frozen LedgerSettings.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    data = load_yaml_file(path)
    database = dict(data.get("database") or {})
    if env.get(ENV_DATABASE_URL):
        database["url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOCK_TIMEOUT_MS):
        database["lock_timeout_ms"] = int(env[ENV_LOCK_TIMEOUT_MS])
    data = {**data, "database": database}
    if env.get(ENV_LOG_LEVEL):
        data["log_level"] = env[ENV_LOG_LEVEL]

    settings = parse_settings(data)

    _logger.info(
        "REAGENT_CONFIG_TRACE",
        extra={
            "config_path": str(path),
            "dialect": settings.database.url.split(":", 1)[0],
            "lock_timeout_ms": settings.database.lock_timeout_ms,
            "log_level": settings.log_level,
            "overrides": sorted(
                k
                for k in (ENV_DATABASE_URL, ENV_LOG_LEVEL, ENV_LOCK_TIMEOUT_MS)
                if env.get(k)
            ),
        },
    )
    return settings


def with_database_url(settings: LedgerSettings, url: str) -> LedgerSettings:
    """Copy of ``settings`` pointing at another database."""
    return dataclasses.replace(
        settings, database=dataclasses.replace(settings.database, url=url)
    )
