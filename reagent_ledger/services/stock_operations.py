"""
StockOperationService -- the public command interface of the stock ledger.

Responsibility:
    Runs stock_in, stock_out, delete_lot and delete_reagent as single
    units of work: validate, lock, mutate the lot, record the movement,
    recompute the reagent total, write the audit entry, commit.

Architecture position:
    Ledger > Services -- top of the write side.  Composes LotManager,
    MovementLedger, ReagentAggregate and AuditService over ONE session.

Invariants enforced:
    - Atomicity: every write of a command commits together or not at all.
      A failure at any step rolls the whole command back.
    - Lock order: reagent row, then lot row(s).  delete_reagent and stock
      operations on the same reagent therefore serialize instead of
      deadlocking.
    - No overdraft: the lot quantity is read under the row lock, so two
      concurrent stock-outs on one lot cannot both spend the same stock.

Failure modes:
    - Typed ReagentLedgerError subclasses propagate unchanged after rollback.
    - Any SQLAlchemyError (constraint violation, lost connection, lock
      timeout, failed commit) is rolled back and re-raised as
      StorageFailureError with the original chained.
    - No retries: a caller may safely re-run a command after
      StorageFailureError.

Audit relevance:
    Each command binds a fresh correlation_id and logs
    ``<operation>_started`` and ``<operation>_completed`` (with duration_ms)
    or ``stock_operation_failed``.
"""

import time
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reagent_ledger.domain.clock import Clock, SystemClock
from reagent_ledger.domain.dtos import (
    LotInfo,
    StockInAction,
    StockInResult,
    StockOutResult,
)
from reagent_ledger.exceptions import (
    InvalidLotNumberError,
    LotNotFoundError,
    MissingLotMetadataError,
    ReagentLedgerError,
    ReagentNotFoundError,
    StorageFailureError,
)
from reagent_ledger.logging_config import LogContext, get_logger
from reagent_ledger.models.audit_log import AuditAction, AuditResourceType
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.models.stock_movement import MovementType
from reagent_ledger.services.audit_service import AuditService
from reagent_ledger.services.lot_manager import LotManager, validate_quantity
from reagent_ledger.services.movement_ledger import MovementLedger, coerce_movement_type
from reagent_ledger.services.reagent_aggregate import ReagentAggregate

logger = get_logger("services.stock_operations")


class StockOperationService:
    """
    Facade for the four stock commands.

    Contract:
        Each public method is one transaction.  With ``auto_commit=True``
        (the default) the service commits on success and rolls back on
        failure.  With ``auto_commit=False`` it only flushes and the caller
        owns commit/rollback, e.g. to compose several commands.

    Guarantees:
        - After a successful call, the lot, its movement, the reagent total
          and the audit entry are all committed.
        - After a failed call, none of them are.

    Non-goals:
        - Does NOT retry on lock timeouts or storage failures.
        - Does NOT authenticate actor_id; the caller resolves the user.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._ledger = MovementLedger(session, self._clock)
        self._lots = LotManager(session, self._ledger)
        self._aggregate = ReagentAggregate(session, self._lots)
        self._audit = AuditService(session, self._clock)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def stock_in(
        self,
        reagent_id: UUID,
        lot_number: str,
        quantity: int,
        actor_id: UUID,
        expiry_date: date | None = None,
        date_of_reception: date | None = None,
        notes: str | None = None,
    ) -> StockInResult:
        """
        Receive stock into a lot, creating the lot on first sight.

        Preconditions:
            - quantity is a positive int.
            - lot_number is non-blank.
            - For a NEW lot, expiry_date and date_of_reception are both set.

        Postconditions:
            - The lot holds quantity more units (or is new with quantity).
            - One IN movement with the before/after snapshots exists.
            - The reagent total equals the sum of its active lots.

        Raises:
            InvalidQuantityError, InvalidLotNumberError,
            MissingLotMetadataError, ReagentNotFoundError,
            StorageFailureError.
        """
        with self._unit_of_work(
            "stock_in", actor_id, reagent_id=reagent_id
        ) as outcome:
            validate_quantity(quantity)
            lot_number = _clean_lot_number(lot_number)

            reagent = self._aggregate.lock(reagent_id)
            existing = self._lots.find_or_prepare(reagent.id, lot_number)

            if existing is None:
                missing = []
                if expiry_date is None:
                    missing.append("expiry_date")
                if date_of_reception is None:
                    missing.append("date_of_reception")
                if missing:
                    raise MissingLotMetadataError(lot_number, missing)

            quantity_before = existing.quantity if existing is not None else 0
            action = (
                StockInAction.CREATED if existing is None else StockInAction.INCREMENTED
            )

            lot = self._lots.apply_stock_in(
                reagent.id,
                lot_number,
                existing,
                quantity,
                actor_id,
                expiry_date=expiry_date,
                date_of_reception=date_of_reception,
            )
            movement = self._ledger.record(
                lot_id=lot.id,
                reagent_id=reagent.id,
                movement_type=MovementType.IN,
                delta=quantity,
                quantity_before=quantity_before,
                quantity_after=lot.quantity,
                actor_id=actor_id,
                notes=notes
                or ("New lot created" if action is StockInAction.CREATED else None),
            )
            total = self._aggregate.recompute(reagent.id)
            self._audit.record(
                AuditAction.STOCK_IN,
                AuditResourceType.LOT,
                lot.id,
                f"Stock in: {quantity} {reagent.unit} of {reagent.name} "
                f"(lot {lot.lot_number}, {action.value})",
                actor_id,
            )

            outcome.update(
                lot_id=str(lot.id),
                action=action.value,
                quantity=quantity,
                reagent_total=total,
            )
            result = StockInResult(
                lot=LotInfo.from_model(lot),
                action=action,
                movement=movement,
                reagent_total=total,
            )
        return result

    def stock_out(
        self,
        lot_id: UUID,
        quantity: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockOutResult:
        """
        Consume stock from one lot.

        All-or-nothing: a request larger than the lot raises
        InsufficientStockError and changes nothing.  A lot that reaches 0
        stays active.

        Raises:
            InvalidQuantityError, LotNotFoundError, InsufficientStockError,
            StorageFailureError.
        """
        with self._unit_of_work("stock_out", actor_id, lot_id=lot_id) as outcome:
            validate_quantity(quantity)

            reagent, lot = self._lock_lot_with_reagent(lot_id)
            quantity_before = lot.quantity
            self._lots.apply_stock_out(lot, quantity, actor_id)
            movement = self._ledger.record(
                lot_id=lot.id,
                reagent_id=reagent.id,
                movement_type=MovementType.OUT,
                delta=-quantity,
                quantity_before=quantity_before,
                quantity_after=lot.quantity,
                actor_id=actor_id,
                notes=notes,
            )
            total = self._aggregate.recompute(reagent.id)
            self._audit.record(
                AuditAction.STOCK_OUT,
                AuditResourceType.LOT,
                lot.id,
                f"Stock out: {quantity} {reagent.unit} of {reagent.name} "
                f"(lot {lot.lot_number})",
                actor_id,
            )

            outcome.update(quantity=quantity, reagent_total=total)
            result = StockOutResult(
                lot=LotInfo.from_model(lot),
                movement=movement,
                reagent_total=total,
            )
        return result

    def delete_lot(
        self,
        lot_id: UUID,
        actor_id: UUID,
        movement_type: MovementType | str = MovementType.ADJUSTMENT,
        notes: str | None = None,
    ) -> None:
        """
        Soft-delete a lot.

        Remaining stock is first written off with a ``movement_type``
        movement (adjustment, expired or damaged), so the lot's history
        ends at 0.

        Raises:
            InvalidMovementTypeError, LotNotFoundError, StorageFailureError.
        """
        with self._unit_of_work("delete_lot", actor_id, lot_id=lot_id) as outcome:
            coerce_movement_type(movement_type)

            reagent, lot = self._lock_lot_with_reagent(lot_id)
            written_off = lot.quantity
            self._lots.delete(lot, actor_id, movement_type=movement_type, notes=notes)
            total = self._aggregate.recompute(reagent.id)
            self._audit.record(
                AuditAction.DELETE,
                AuditResourceType.LOT,
                lot.id,
                f"Deleted lot {lot.lot_number} of {reagent.name} "
                f"({written_off} {reagent.unit} written off)",
                actor_id,
            )
            outcome.update(written_off=written_off, reagent_total=total)

    def delete_reagent(self, reagent_id: UUID, actor_id: UUID) -> None:
        """
        Soft-delete a reagent and every active lot, in one transaction.

        Raises:
            ReagentNotFoundError, StorageFailureError.
        """
        with self._unit_of_work(
            "delete_reagent", actor_id, reagent_id=reagent_id
        ) as outcome:
            reagent = self._aggregate.lock(reagent_id)
            write_offs = self._aggregate.delete(reagent, actor_id)
            self._audit.record(
                AuditAction.DELETE,
                AuditResourceType.REAGENT,
                reagent.id,
                f"Deleted reagent {reagent.name} ({reagent.reference}), "
                f"{len(write_offs)} lot(s) written off",
                actor_id,
            )
            outcome.update(lots_written_off=len(write_offs))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _lock_lot_with_reagent(self, lot_id: UUID) -> tuple[Reagent, Lot]:
        """Lock the lot's reagent, then the lot itself."""
        reagent_id = self._session.execute(
            select(Lot.reagent_id).where(Lot.id == lot_id, Lot.is_active.is_(True))
        ).scalar_one_or_none()
        if reagent_id is None:
            raise LotNotFoundError(str(lot_id))

        try:
            reagent = self._aggregate.lock(reagent_id)
        except ReagentNotFoundError:
            # Reagent deleted between the lookup and the lock
            raise LotNotFoundError(str(lot_id)) from None

        lot = self._lots.lock(lot_id)
        return reagent, lot

    @contextmanager
    def _unit_of_work(
        self, operation: str, actor_id: UUID, **context: Any
    ) -> Iterator[dict[str, Any]]:
        """Transaction, log context and timing around one command."""
        bound = {k: str(v) for k, v in context.items() if v is not None}
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            operation=operation,
            **bound,
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            outcome: dict[str, Any] = {}

            try:
                yield outcome
                if self._auto_commit:
                    self._session.commit()
            except ReagentLedgerError:
                self._fail(t0, logging_level="warning")
                raise
            except SQLAlchemyError as exc:
                self._fail(t0, logging_level="error")
                reason = str(getattr(exc, "orig", None) or exc)
                raise StorageFailureError(operation, reason) from exc
            except Exception:
                self._fail(t0, logging_level="error")
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": duration_ms, **outcome},
            )

    def _fail(self, t0: float, logging_level: str) -> None:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        if self._auto_commit:
            self._session.rollback()
        getattr(logger, logging_level)(
            "stock_operation_failed",
            extra={"duration_ms": duration_ms},
            exc_info=True,
        )


def _clean_lot_number(lot_number) -> str:
    if not isinstance(lot_number, str) or not lot_number.strip():
        raise InvalidLotNumberError(lot_number)
    return lot_number.strip()
