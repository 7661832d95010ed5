"""
MovementLedger -- append-only record of every lot quantity change.

Responsibility:
    Writes one immutable StockMovement per quantity change, with the
    before/after snapshots of the lot and a per-lot sequence number.

Architecture position:
    Ledger > Services.  Leaf component: called by LotManager and
    StockOperationService, calls nothing but the session.

Invariants enforced:
    - quantity_after = quantity_before + quantity; both snapshots >= 0;
      quantity is a non-zero int whose sign matches the movement type.
    - quantity_after equals the lot's current (already mutated) quantity,
      so the lot never drifts from its replayed history.
    - sequence_number comes from the lot's locked counter column
      (Lot.movement_sequence), never from MAX(sequence_number) + 1.

Failure modes:
    - MovementInvariantError: arithmetic or sign mismatch (caller bug).
    - InvalidMovementTypeError: unknown movement type.
    - LotNotFoundError: lot_id does not resolve.
    - SQLAlchemy errors from flush propagate unchanged.
"""

from uuid import UUID

from reagent_ledger.domain.clock import Clock, SystemClock
from reagent_ledger.domain.dtos import MovementFilters, MovementRecord
from reagent_ledger.exceptions import (
    InvalidMovementTypeError,
    LotNotFoundError,
    MovementInvariantError,
)
from reagent_ledger.logging_config import get_logger
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.stock_movement import MovementType, StockMovement
from reagent_ledger.services.base import BaseService

logger = get_logger("services.movement_ledger")

_POSITIVE_TYPES = frozenset({MovementType.IN})
_NEGATIVE_TYPES = frozenset(
    {MovementType.OUT, MovementType.EXPIRED, MovementType.DAMAGED}
)


def coerce_movement_type(movement_type: MovementType | str) -> MovementType:
    """Accept a MovementType or its string value."""
    try:
        return MovementType(movement_type)
    except ValueError:
        raise InvalidMovementTypeError(
            movement_type, [t.value for t in MovementType]
        ) from None


class MovementLedger(BaseService[StockMovement]):
    """
    Appends stock movements.

    Contract:
        The caller holds the row lock on the lot and has already applied
        the quantity change to it.  ``record`` writes the matching movement
        in the same transaction.

    Non-goals:
        - Does NOT change lot quantities.
        - Does NOT commit.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        lot_id: UUID,
        reagent_id: UUID,
        movement_type: MovementType | str,
        delta: int,
        quantity_before: int,
        quantity_after: int,
        actor_id: UUID,
        notes: str | None = None,
        lot_number: str | None = None,
        expiry_date=None,
    ) -> MovementRecord:
        """
        Append one movement for a lot.

        Args:
            lot_id: Lot whose quantity changed.
            reagent_id: Owning reagent.
            movement_type: in, out, adjustment, expired or damaged.
            delta: Signed quantity change (never 0).
            quantity_before: Lot quantity before the change.
            quantity_after: Lot quantity after the change.
            actor_id: User who performed the change.
            notes: Free-text note.
            lot_number: Snapshot of the lot number.  Defaults to the lot's.
            expiry_date: Snapshot of the lot expiry.  Defaults to the lot's.

        Returns:
            MovementRecord for the new row.
        """
        mtype = coerce_movement_type(movement_type)
        self._check_arithmetic(lot_id, mtype, delta, quantity_before, quantity_after)

        if lot_id is None:
            raise MovementInvariantError(None, "a movement must reference a lot")
        lot = self.session.get(Lot, lot_id)
        if lot is None:
            raise LotNotFoundError(str(lot_id))

        if lot.quantity != quantity_after:
            raise MovementInvariantError(
                str(lot_id),
                f"quantity_after {quantity_after} does not match lot quantity "
                f"{lot.quantity}",
            )

        lot.movement_sequence += 1

        movement = StockMovement(
            lot_id=lot_id,
            reagent_id=reagent_id,
            movement_type=mtype.value,
            quantity=delta,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            sequence_number=lot.movement_sequence,
            lot_number=lot_number if lot_number is not None else lot.lot_number,
            expiry_date=expiry_date if expiry_date is not None else lot.expiry_date,
            performed_by=actor_id,
            performed_at=self._clock.now(),
            notes=notes,
        )
        self.session.add(movement)
        self.session.flush()

        logger.debug(
            "movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "movement_type": mtype.value,
                "delta": delta,
                "quantity_before": quantity_before,
                "quantity_after": quantity_after,
                "sequence_number": movement.sequence_number,
            },
        )
        return MovementRecord.from_model(movement)

    def history(
        self, reagent_id: UUID, filters: MovementFilters | None = None
    ) -> list[MovementRecord]:
        """Movements of a reagent, most recent first.  See MovementSelector.history."""
        from reagent_ledger.selectors.movement_selector import MovementSelector

        return MovementSelector(self.session, self._clock).history(reagent_id, filters)

    @staticmethod
    def _check_arithmetic(
        lot_id,
        mtype: MovementType,
        delta: int,
        quantity_before: int,
        quantity_after: int,
    ) -> None:
        lot_ref = str(lot_id) if lot_id is not None else None

        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise MovementInvariantError(lot_ref, f"delta must be a non-zero int, got {delta!r}")
        if quantity_before < 0 or quantity_after < 0:
            raise MovementInvariantError(
                lot_ref,
                f"quantities cannot be negative ({quantity_before} -> {quantity_after})",
            )
        if quantity_after != quantity_before + delta:
            raise MovementInvariantError(
                lot_ref,
                f"{quantity_before} {delta:+d} != {quantity_after}",
            )
        if mtype in _POSITIVE_TYPES and delta < 0:
            raise MovementInvariantError(lot_ref, f"{mtype.value} movements must be positive")
        if mtype in _NEGATIVE_TYPES and delta > 0:
            raise MovementInvariantError(lot_ref, f"{mtype.value} movements must be negative")
