"""
LotManager -- lot lookup, creation, and quantity mutation.

Responsibility:
    Decides whether a stock-in creates a new lot or increments an existing
    one, applies stock-in/stock-out quantity changes, and soft-deletes lots
    (recording a write-off movement first when stock remains).

Architecture position:
    Ledger > Services.  Called by StockOperationService and
    ReagentAggregate; calls MovementLedger for deletion write-offs.

Invariants enforced:
    - At most one active lot per (reagent_id, lot_number); lookups are
      case-sensitive and only consider active lots.
    - Lot quantity never goes negative: stock-out is all-or-nothing.
    - The first stock-in fixes a lot's expiry and reception dates.
    - Every lookup used for mutation takes a row lock
      (SELECT ... FOR UPDATE) and refreshes the identity map
      (populate_existing), so a quantity read here is never stale.

Failure modes:
    - InvalidQuantityError, InsufficientStockError, LotNotFoundError,
      InvalidMovementTypeError.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from reagent_ledger.domain.dtos import MovementRecord
from reagent_ledger.exceptions import (
    InsufficientStockError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    LotNotFoundError,
)
from reagent_ledger.logging_config import get_logger
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.stock_movement import WRITE_OFF_TYPES, MovementType
from reagent_ledger.services.base import BaseService
from reagent_ledger.services.movement_ledger import MovementLedger, coerce_movement_type

logger = get_logger("services.lot_manager")


def validate_quantity(quantity) -> int:
    """Quantities are whole units and strictly positive."""
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


class LotManager(BaseService[Lot]):
    """
    Owns lot rows and their quantity column.

    Contract:
        Callers lock the owning reagent before calling any mutating method.
        Methods flush but never commit.
    """

    def __init__(self, session, ledger: MovementLedger):
        super().__init__(session)
        self._ledger = ledger

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def find_or_prepare(self, reagent_id: UUID, lot_number: str) -> Lot | None:
        """
        Find the active lot with this exact number, locked for update.

        Returns None when the stock-in must create a new lot.
        """
        return self.session.execute(
            select(Lot)
            .where(
                Lot.reagent_id == reagent_id,
                Lot.lot_number == lot_number,
                Lot.is_active.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock(self, lot_id: UUID) -> Lot:
        """Load an active lot with a row lock."""
        lot = self.session.execute(
            select(Lot)
            .where(Lot.id == lot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lot is None or not lot.is_active:
            raise LotNotFoundError(str(lot_id))
        return lot

    def active_lots(self, reagent_id: UUID) -> list[Lot]:
        """All active lots of a reagent, locked, in lot-number order."""
        return list(
            self.session.execute(
                select(Lot)
                .where(Lot.reagent_id == reagent_id, Lot.is_active.is_(True))
                .order_by(Lot.lot_number, Lot.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def apply_stock_in(
        self,
        reagent_id: UUID,
        lot_number: str,
        lot: Lot | None,
        quantity: int,
        actor_id: UUID,
        expiry_date: date | None = None,
        date_of_reception: date | None = None,
    ) -> Lot:
        """
        Create a new lot, or add ``quantity`` to an existing one.

        For an existing lot, expiry_date and date_of_reception are ignored:
        the dates from the lot's first stock-in stay authoritative.
        """
        validate_quantity(quantity)

        if lot is None:
            lot = Lot(
                reagent_id=reagent_id,
                lot_number=lot_number,
                quantity=quantity,
                expiry_date=expiry_date,
                date_of_reception=date_of_reception,
                is_active=True,
                movement_sequence=0,
                created_by_id=actor_id,
            )
            self.session.add(lot)
            self.session.flush()
            logger.info(
                "lot_created",
                extra={
                    "lot_id": str(lot.id),
                    "lot_number": lot_number,
                    "quantity": quantity,
                },
            )
            return lot

        if (expiry_date is not None and expiry_date != lot.expiry_date) or (
            date_of_reception is not None
            and date_of_reception != lot.date_of_reception
        ):
            logger.info(
                "stock_in_lot_metadata_ignored",
                extra={
                    "lot_id": str(lot.id),
                    "kept_expiry_date": lot.expiry_date,
                    "ignored_expiry_date": expiry_date,
                    "kept_date_of_reception": lot.date_of_reception,
                    "ignored_date_of_reception": date_of_reception,
                },
            )

        lot.quantity += quantity
        lot.updated_by_id = actor_id
        self.session.flush()
        return lot

    def apply_stock_out(self, lot: Lot, quantity: int, actor_id: UUID) -> Lot:
        """Remove ``quantity`` from a lot, or raise without touching it."""
        validate_quantity(quantity)

        if quantity > lot.quantity:
            raise InsufficientStockError(
                lot_id=str(lot.id),
                lot_number=lot.lot_number,
                requested=quantity,
                available=lot.quantity,
            )

        lot.quantity -= quantity
        lot.updated_by_id = actor_id
        self.session.flush()
        return lot

    def delete(
        self,
        lot: Lot,
        actor_id: UUID,
        movement_type: MovementType | str = MovementType.ADJUSTMENT,
        notes: str | None = None,
    ) -> MovementRecord | None:
        """
        Soft-delete a locked lot.

        When stock remains, a write-off movement of -quantity is recorded
        and the lot is zeroed first, so the history explains where the
        stock went.  Returns that movement, or None for an empty lot.
        """
        mtype = coerce_movement_type(movement_type)
        if mtype not in WRITE_OFF_TYPES:
            raise InvalidMovementTypeError(
                mtype.value, sorted(t.value for t in WRITE_OFF_TYPES)
            )
        if not lot.is_active:
            raise LotNotFoundError(str(lot.id))

        movement = None
        quantity_before = lot.quantity
        if quantity_before > 0:
            lot.quantity = 0
            movement = self._ledger.record(
                lot_id=lot.id,
                reagent_id=lot.reagent_id,
                movement_type=mtype,
                delta=-quantity_before,
                quantity_before=quantity_before,
                quantity_after=0,
                actor_id=actor_id,
                notes=notes or "Lot deleted",
            )

        lot.is_active = False
        lot.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "lot_deleted",
            extra={
                "lot_id": str(lot.id),
                "lot_number": lot.lot_number,
                "written_off": quantity_before,
            },
        )
        return movement
