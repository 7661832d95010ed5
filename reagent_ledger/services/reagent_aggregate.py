"""
ReagentAggregate -- keeps Reagent.total_quantity equal to its active lots.

Responsibility:
    Recomputes a reagent's aggregate quantity by summation over its active
    lots, and cascades reagent deletion over those lots.

Architecture position:
    Ledger > Services.  Called last in every StockOperationService command
    that changes a lot quantity or active flag, inside the same transaction.

Invariants enforced:
    - total_quantity == SUM(lot.quantity) over active lots, after every
      committed operation.  The total is always recomputed from the lots,
      never adjusted by a delta, so a missed increment cannot accumulate.
    - Lock order is reagent row first, then lot rows.  Holding the reagent
      lock while summing means no concurrent command can change one of its
      lots between the lot write and the recompute.

Failure modes:
    - ReagentNotFoundError when locking a missing or deleted reagent.
    - SQLAlchemy errors propagate; the caller rolls back.
"""

from uuid import UUID

from sqlalchemy import func, select

from reagent_ledger.domain.dtos import MovementRecord
from reagent_ledger.exceptions import ReagentNotFoundError
from reagent_ledger.logging_config import get_logger
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.services.base import BaseService
from reagent_ledger.services.lot_manager import LotManager

logger = get_logger("services.reagent_aggregate")


class ReagentAggregate(BaseService[Reagent]):
    def __init__(self, session, lots: LotManager):
        super().__init__(session)
        self._lots = lots

    def lock(self, reagent_id: UUID) -> Reagent:
        """Load an active reagent with a row lock."""
        reagent = self.session.execute(
            select(Reagent)
            .where(Reagent.id == reagent_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if reagent is None or not reagent.is_active:
            raise ReagentNotFoundError(str(reagent_id))
        return reagent

    def recompute(self, reagent_id: UUID) -> int:
        """
        Write the sum of active lot quantities into total_quantity.

        Preconditions: the caller holds the reagent row lock and has flushed
            its lot changes.

        Returns:
            The new total.
        """
        total = self.session.execute(
            select(func.coalesce(func.sum(Lot.quantity), 0)).where(
                Lot.reagent_id == reagent_id,
                Lot.is_active.is_(True),
            )
        ).scalar_one()

        reagent = self.session.get(Reagent, reagent_id)
        if reagent is None:
            raise ReagentNotFoundError(str(reagent_id))

        previous = reagent.total_quantity
        reagent.total_quantity = int(total)
        self.session.flush()

        logger.debug(
            "reagent_total_recomputed",
            extra={"previous_total": previous, "total": reagent.total_quantity},
        )
        return reagent.total_quantity

    def delete(self, reagent: Reagent, actor_id: UUID) -> list[MovementRecord]:
        """
        Delete every active lot (write-off first), then the reagent itself.

        All in the caller's transaction: either the whole cascade commits
        or none of it does.
        """
        write_offs = []
        for lot in self._lots.active_lots(reagent.id):
            movement = self._lots.delete(
                lot, actor_id, notes="Reagent deleted"
            )
            if movement is not None:
                write_offs.append(movement)

        reagent.is_active = False
        reagent.updated_by_id = actor_id
        self.session.flush()
        self.recompute(reagent.id)

        logger.info(
            "reagent_deleted",
            extra={
                "lots_written_off": len(write_offs),
                "quantity_written_off": -sum(m.quantity for m in write_offs),
            },
        )
        return write_offs
