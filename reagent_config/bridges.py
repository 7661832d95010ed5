"""
Config -> Ledger Bridges.

Functions that turn LedgerSettings into ledger objects.  These live in
reagent_config (the producer) because the ledger must NEVER import
reagent_config.

Usage:
    from reagent_config import get_active_config
    from reagent_config.bridges import start_ledger

    settings = get_active_config()
    engine = start_ledger(settings)
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from reagent_config.schema import LedgerSettings
from reagent_ledger.db.engine import create_tables, init_engine_from_url
from reagent_ledger.db.immutability import register_immutability_listeners
from reagent_ledger.domain.clock import Clock
from reagent_ledger.logging_config import configure_logging
from reagent_ledger.selectors.inventory_selector import InventorySelector
from reagent_ledger.selectors.movement_selector import MovementSelector


def start_ledger(settings: LedgerSettings, create_schema: bool = False) -> Engine:
    """
    Configure logging, initialize the engine and install immutability
    listeners.  Optionally create the tables.
    """
    configure_logging(level=logging.getLevelNamesMapping()[settings.log_level])

    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        lock_timeout_ms=db.lock_timeout_ms,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()
    return engine


def build_inventory_selector(
    session: Session, settings: LedgerSettings, clock: Clock | None = None
) -> InventorySelector:
    """InventorySelector using the configured expiry thresholds."""
    return InventorySelector(
        session,
        clock=clock,
        warning_days=settings.expiry.warning_days,
        critical_days=settings.expiry.critical_days,
    )


def build_movement_selector(
    session: Session, settings: LedgerSettings, clock: Clock | None = None
) -> MovementSelector:
    """MovementSelector using the configured history page size."""
    return MovementSelector(session, clock=clock, history_limit=settings.history_limit)
