"""ORM models for the reagent ledger."""

from reagent_ledger.models.audit_log import AuditAction, AuditLogEntry, AuditResourceType
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import (
    DEFAULT_CATEGORY,
    DEFAULT_UNIT,
    REAGENT_UNITS,
    Reagent,
)
from reagent_ledger.models.stock_movement import (
    WRITE_OFF_TYPES,
    MovementType,
    StockMovement,
)

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "AuditResourceType",
    "DEFAULT_CATEGORY",
    "DEFAULT_UNIT",
    "Lot",
    "MovementType",
    "REAGENT_UNITS",
    "Reagent",
    "StockMovement",
    "WRITE_OFF_TYPES",
]
