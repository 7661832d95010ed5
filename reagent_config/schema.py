"""
Reagent ledger runtime settings schema.

Frozen dataclasses parsed from YAML by ``reagent_config.loader``.  The
kernel never sees YAML: ``reagent_config.bridges`` turns these values into
engine, logging and selector arguments.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    lock_timeout_ms: int = 5000


@dataclass(frozen=True)
class ExpiryThresholds:
    """Days before expiry at which a lot becomes CRITICAL / WARNING."""

    critical_days: int = 7
    warning_days: int = 30


@dataclass(frozen=True)
class LedgerSettings:
    """Top-level settings for one deployment."""

    database: DatabaseSettings
    expiry: ExpiryThresholds = field(default_factory=ExpiryThresholds)
    history_limit: int = 100
    log_level: str = "INFO"
