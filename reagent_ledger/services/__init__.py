"""Ledger services. Write side; every service flushes, none commits."""

from reagent_ledger.services.audit_service import AuditService
from reagent_ledger.services.lot_manager import LotManager
from reagent_ledger.services.movement_ledger import MovementLedger
from reagent_ledger.services.reagent_aggregate import ReagentAggregate
from reagent_ledger.services.reagent_service import ReagentService
from reagent_ledger.services.stock_operations import StockOperationService

__all__ = [
    "AuditService",
    "LotManager",
    "MovementLedger",
    "ReagentAggregate",
    "ReagentService",
    "StockOperationService",
]
