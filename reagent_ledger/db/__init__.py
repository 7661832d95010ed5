"""Database layer - engine, base classes, and immutability listeners."""

from reagent_ledger.db.base import UUID, Base, TrackedBase, UUIDString
from reagent_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
