"""Read-only selectors over reagents, lots, movements and the audit trail."""

from reagent_ledger.selectors.audit_selector import AuditSelector
from reagent_ledger.selectors.integrity_selector import LedgerIntegritySelector
from reagent_ledger.selectors.inventory_selector import InventorySelector
from reagent_ledger.selectors.movement_selector import MovementSelector

__all__ = [
    "AuditSelector",
    "InventorySelector",
    "LedgerIntegritySelector",
    "MovementSelector",
]
