"""
LedgerIntegritySelector -- replays the ledger and reports drift.

Recomputes what stored quantities SHOULD be from first principles:

    reagent.total_quantity  ==  SUM(active lot.quantity)
    lot.quantity            ==  SUM(movement.quantity), replayed from 0

and flags any movement whose quantity_before does not continue the running
total.  Used by tests after every operation and by operators as a health
check.  Read-only.
"""

from uuid import UUID

from sqlalchemy import func, select

from reagent_ledger.domain.dtos import AggregateCheck, ReplayCheck
from reagent_ledger.exceptions import LotNotFoundError, ReagentNotFoundError
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.models.stock_movement import StockMovement
from reagent_ledger.selectors.base import BaseSelector


class LedgerIntegritySelector(BaseSelector[StockMovement]):
    def check_reagent_total(self, reagent_id: UUID) -> AggregateCheck:
        reagent = self.session.get(Reagent, reagent_id)
        if reagent is None:
            raise ReagentNotFoundError(str(reagent_id))

        computed = self.session.execute(
            select(func.coalesce(func.sum(Lot.quantity), 0)).where(
                Lot.reagent_id == reagent_id, Lot.is_active.is_(True)
            )
        ).scalar_one()
        return AggregateCheck(
            reagent_id=reagent.id,
            stored_total=reagent.total_quantity,
            computed_total=int(computed),
        )

    def replay_lot(self, lot_id: UUID) -> ReplayCheck:
        lot = self.session.get(Lot, lot_id)
        if lot is None:
            raise LotNotFoundError(str(lot_id))

        movements = self.session.execute(
            select(StockMovement)
            .where(StockMovement.lot_id == lot_id)
            .order_by(StockMovement.performed_at, StockMovement.sequence_number)
        ).scalars()

        running = 0
        count = 0
        broken = []
        for movement in movements:
            count += 1
            if movement.quantity_before != running:
                broken.append(movement.sequence_number)
            running += movement.quantity

        return ReplayCheck(
            lot_id=lot.id,
            stored_quantity=lot.quantity,
            replayed_quantity=running,
            movement_count=count,
            broken_sequence_numbers=tuple(broken),
        )

    def find_violations(self) -> list[AggregateCheck | ReplayCheck]:
        """Every inconsistent active reagent and every inconsistent lot."""
        violations: list[AggregateCheck | ReplayCheck] = []

        reagent_ids = self.session.execute(
            select(Reagent.id).where(Reagent.is_active.is_(True)).order_by(Reagent.id)
        ).scalars().all()
        for reagent_id in reagent_ids:
            check = self.check_reagent_total(reagent_id)
            if not check.is_consistent:
                violations.append(check)

        lot_ids = self.session.execute(select(Lot.id).order_by(Lot.id)).scalars().all()
        for lot_id in lot_ids:
            check = self.replay_lot(lot_id)
            if not check.is_consistent:
                violations.append(check)

        return violations
