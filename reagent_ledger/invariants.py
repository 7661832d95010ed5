"""
Ledger Invariants Contract.

These invariants are structural law for the stock ledger.  No configuration
may switch them off.  This module only declares them; enforcement is
distributed across StockOperationService, LotManager, MovementLedger,
ReagentAggregate, the immutability listeners and database constraints.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the ledger."""

    AGGREGATE_CONSISTENCY = "aggregate_consistency"
    """A reagent's total_quantity equals the sum of its active lots after
    every committed operation.  Enforced by ReagentAggregate.recompute in
    the same transaction as the lot change."""

    MOVEMENT_REPLAY = "movement_replay"
    """Replaying a lot's movements from 0 reproduces its quantity.
    Enforced by MovementLedger and ck_movement_arithmetic."""

    NO_OVERDRAFT = "no_overdraft"
    """No lot quantity goes below zero, even under concurrent stock-outs.
    Enforced by row locks in LotManager and ck_lot_quantity_non_negative."""

    APPEND_ONLY_HISTORY = "append_only_history"
    """Stock movements and audit entries are never updated or deleted.
    Enforced by reagent_ledger.db.immutability."""

    ACTIVE_LOT_UNIQUENESS = "active_lot_uniqueness"
    """At most one active lot per (reagent, lot_number).  Enforced by
    uq_lots_active_lot_number and the reagent lock around stock-in."""

    ATOMIC_COMMANDS = "atomic_commands"
    """A stock command commits all of its writes or none.  Enforced by
    StockOperationService's unit of work."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The ledger package may not import from these packages.
# Enforced by tests/architecture/test_ledger_boundary.py.
FORBIDDEN_LEDGER_IMPORTS: tuple[str, ...] = ("reagent_config",)
