"""
StockOperationService -- the four stock commands end to end.

Every test checks the two ledger invariants after the command:
the reagent total equals its active lots, and each lot equals the replay
of its movements.
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from reagent_ledger.domain.dtos import StockInAction
from reagent_ledger.exceptions import (
    InsufficientStockError,
    InvalidLotNumberError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    LotNotFoundError,
    MissingLotMetadataError,
    ReagentNotFoundError,
)
from reagent_ledger.models.audit_log import AuditLogEntry
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.models.stock_movement import MovementType, StockMovement
from reagent_ledger.selectors.integrity_selector import LedgerIntegritySelector
from reagent_ledger.services.stock_operations import StockOperationService

EXPIRY = date(2026, 12, 31)
RECEPTION = date(2026, 2, 20)


def _lots(session, reagent_id, active_only=False) -> list[Lot]:
    stmt = select(Lot).where(Lot.reagent_id == reagent_id)
    if active_only:
        stmt = stmt.where(Lot.is_active.is_(True))
    return list(session.execute(stmt.order_by(Lot.lot_number)).scalars())


def _movements(session, lot_id) -> list[StockMovement]:
    return list(
        session.execute(
            select(StockMovement)
            .where(StockMovement.lot_id == lot_id)
            .order_by(StockMovement.sequence_number)
        ).scalars()
    )


def _movement_count(session) -> int:
    return session.execute(select(func.count()).select_from(StockMovement)).scalar_one()


def _assert_ledger_consistent(session):
    assert LedgerIntegritySelector(session).find_violations() == []


# =============================================================================
# stock_in
# =============================================================================


class TestStockInCreateVsIncrement:
    def test_first_stock_in_creates_lot(self, session, reagent, receive):
        result = receive(reagent.id, "L1", 10)

        assert result.action is StockInAction.CREATED
        assert result.lot.quantity == 10
        assert result.lot.expiry_date == EXPIRY
        assert result.lot.date_of_reception == RECEPTION
        assert result.lot.is_active is True
        assert result.reagent_total == 10

        movement = result.movement
        assert movement.movement_type is MovementType.IN
        assert movement.quantity == 10
        assert movement.quantity_before == 0
        assert movement.quantity_after == 10
        assert movement.sequence_number == 1
        assert movement.notes == "New lot created"
        _assert_ledger_consistent(session)

    def test_second_stock_in_increments_without_dates(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        first = receive(reagent.id, "L1", 10)
        second = stock_service.stock_in(
            reagent_id=reagent.id,
            lot_number="L1",
            quantity=5,
            actor_id=test_actor_id,
        )

        assert second.action is StockInAction.INCREMENTED
        assert second.lot.id == first.lot.id
        assert second.lot.quantity == 15
        assert second.movement.quantity_before == 10
        assert second.movement.quantity_after == 15
        assert second.movement.sequence_number == 2
        assert second.movement.notes is None
        assert len(_lots(session, reagent.id)) == 1
        assert session.get(Reagent, reagent.id).total_quantity == 15
        _assert_ledger_consistent(session)

    def test_existing_lot_keeps_first_dates(
        self, session, reagent, receive, captured_logs
    ):
        receive(reagent.id, "L1", 10)
        result = receive(
            reagent.id,
            "L1",
            2,
            expiry_date=date(2027, 6, 30),
            date_of_reception=date(2026, 3, 1),
        )

        assert result.lot.expiry_date == EXPIRY
        assert result.lot.date_of_reception == RECEPTION
        ignored = [
            r for r in captured_logs() if r["message"] == "stock_in_lot_metadata_ignored"
        ]
        assert len(ignored) == 1
        assert ignored[0]["ignored_expiry_date"] == "2027-06-30"
        assert ignored[0]["kept_expiry_date"] == "2026-12-31"

    def test_lot_number_is_case_sensitive(self, session, reagent, receive):
        receive(reagent.id, "abc", 1)
        result = receive(reagent.id, "ABC", 2)

        assert result.action is StockInAction.CREATED
        assert [lot.lot_number for lot in _lots(session, reagent.id)] == ["ABC", "abc"]
        assert result.reagent_total == 3

    def test_lot_number_is_trimmed(self, session, reagent, receive):
        receive(reagent.id, "L1", 4)
        result = receive(reagent.id, "  L1 ", 1)

        assert result.action is StockInAction.INCREMENTED
        assert result.lot.lot_number == "L1"
        assert result.lot.quantity == 5

    def test_same_lot_number_on_other_reagent_is_separate(
        self, session, create_reagent, receive
    ):
        r1 = create_reagent()
        r2 = create_reagent()
        receive(r1.id, "SHARED", 3)
        result = receive(r2.id, "SHARED", 4)

        assert result.action is StockInAction.CREATED
        assert session.get(Reagent, r1.id).total_quantity == 3
        assert session.get(Reagent, r2.id).total_quantity == 4

    def test_caller_notes_recorded(self, reagent, receive):
        result = receive(reagent.id, "L1", 1, notes="Delivery 42")
        assert result.movement.notes == "Delivery 42"

    def test_audit_entry_written(self, session, reagent, receive):
        result = receive(reagent.id, "L1", 10)
        entry = session.execute(
            select(AuditLogEntry).where(AuditLogEntry.resource_id == result.lot.id)
        ).scalar_one()
        assert entry.action == "stock_in"
        assert entry.resource_type == "lot"
        assert "L1" in entry.description


class TestStockInValidation:
    def test_missing_metadata_creates_nothing(
        self, session, reagent, stock_service, test_actor_id
    ):
        with pytest.raises(MissingLotMetadataError) as exc_info:
            stock_service.stock_in(
                reagent_id=reagent.id,
                lot_number="NEW",
                quantity=3,
                actor_id=test_actor_id,
            )

        assert exc_info.value.missing_fields == ["expiry_date", "date_of_reception"]
        assert _lots(session, reagent.id) == []
        assert _movement_count(session) == 0
        assert session.get(Reagent, reagent.id).total_quantity == 0

    def test_missing_reception_only(self, reagent, stock_service, test_actor_id):
        with pytest.raises(MissingLotMetadataError) as exc_info:
            stock_service.stock_in(
                reagent_id=reagent.id,
                lot_number="NEW",
                quantity=3,
                actor_id=test_actor_id,
                expiry_date=EXPIRY,
            )
        assert exc_info.value.missing_fields == ["date_of_reception"]

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "3", True, None])
    def test_invalid_quantity(self, session, reagent, receive, quantity):
        with pytest.raises(InvalidQuantityError) as exc_info:
            receive(reagent.id, "L1", quantity)

        assert str(exc_info.value) == "Quantity must be greater than 0"
        assert _lots(session, reagent.id) == []
        assert _movement_count(session) == 0

    @pytest.mark.parametrize("lot_number", ["", "   ", None])
    def test_invalid_lot_number(self, session, reagent, receive, lot_number):
        with pytest.raises(InvalidLotNumberError):
            receive(reagent.id, lot_number, 1)
        assert _lots(session, reagent.id) == []

    def test_unknown_reagent(self, receive):
        with pytest.raises(ReagentNotFoundError):
            receive(uuid4(), "L1", 1)

    def test_deleted_reagent(self, reagent, receive, stock_service, test_actor_id):
        stock_service.delete_reagent(reagent.id, test_actor_id)
        with pytest.raises(ReagentNotFoundError):
            receive(reagent.id, "L1", 1)


# =============================================================================
# stock_out
# =============================================================================


class TestStockOut:
    def test_consumes_from_lot(self, session, reagent, receive, stock_service, test_actor_id):
        lot = receive(reagent.id, "L1", 10).lot
        result = stock_service.stock_out(lot.id, 4, test_actor_id, notes="Run 7")

        assert result.lot.quantity == 6
        assert result.reagent_total == 6
        assert result.movement.movement_type is MovementType.OUT
        assert result.movement.quantity == -4
        assert result.movement.quantity_before == 10
        assert result.movement.quantity_after == 6
        assert result.movement.notes == "Run 7"
        _assert_ledger_consistent(session)

    def test_insufficient_stock_changes_nothing(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        lot = receive(reagent.id, "L1", 5).lot
        movements_before = _movement_count(session)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.stock_out(lot.id, 6, test_actor_id)

        assert exc_info.value.available == 5
        assert exc_info.value.requested == 6
        assert "available 5" in str(exc_info.value)
        assert session.get(Lot, lot.id).quantity == 5
        assert session.get(Reagent, reagent.id).total_quantity == 5
        assert _movement_count(session) == movements_before

    def test_exact_quantity_empties_lot_but_keeps_it_active(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        lot = receive(reagent.id, "L1", 5).lot
        result = stock_service.stock_out(lot.id, 5, test_actor_id)

        assert result.lot.quantity == 0
        assert result.lot.is_active is True
        assert result.reagent_total == 0

    def test_other_lots_unaffected(self, session, reagent, receive, stock_service, test_actor_id):
        lot_a = receive(reagent.id, "A", 5).lot
        receive(reagent.id, "B", 8)
        result = stock_service.stock_out(lot_a.id, 2, test_actor_id)

        assert result.reagent_total == 11
        _assert_ledger_consistent(session)

    @pytest.mark.parametrize("quantity", [0, -2, 2.0])
    def test_invalid_quantity(self, session, reagent, receive, stock_service, test_actor_id, quantity):
        lot = receive(reagent.id, "L1", 5).lot
        with pytest.raises(InvalidQuantityError):
            stock_service.stock_out(lot.id, quantity, test_actor_id)
        assert session.get(Lot, lot.id).quantity == 5

    def test_unknown_lot(self, stock_service, test_actor_id):
        with pytest.raises(LotNotFoundError):
            stock_service.stock_out(uuid4(), 1, test_actor_id)

    def test_deleted_lot(self, reagent, receive, stock_service, test_actor_id):
        lot = receive(reagent.id, "L1", 5).lot
        stock_service.delete_lot(lot.id, test_actor_id)
        with pytest.raises(LotNotFoundError):
            stock_service.stock_out(lot.id, 1, test_actor_id)

    def test_sequence_numbers_are_contiguous(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        lot = receive(reagent.id, "L1", 10).lot
        stock_service.stock_out(lot.id, 1, test_actor_id)
        receive(reagent.id, "L1", 3)
        stock_service.stock_out(lot.id, 2, test_actor_id)

        assert [m.sequence_number for m in _movements(session, lot.id)] == [1, 2, 3, 4]
        assert session.get(Lot, lot.id).movement_sequence == 4


# =============================================================================
# delete_lot
# =============================================================================


class TestDeleteLot:
    def test_zeroes_before_removing(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        receive(reagent.id, "KEEP", 3)
        lot = receive(reagent.id, "L1", 7).lot
        total_before = session.get(Reagent, reagent.id).total_quantity

        stock_service.delete_lot(lot.id, test_actor_id)

        write_off = _movements(session, lot.id)[-1]
        assert write_off.movement_type == MovementType.ADJUSTMENT.value
        assert write_off.quantity == -7
        assert write_off.quantity_before == 7
        assert write_off.quantity_after == 0
        assert write_off.notes == "Lot deleted"

        deleted = session.get(Lot, lot.id)
        assert deleted.is_active is False
        assert deleted.quantity == 0
        assert session.get(Reagent, reagent.id).total_quantity == total_before - 7
        _assert_ledger_consistent(session)

    @pytest.mark.parametrize("movement_type", ["expired", MovementType.DAMAGED])
    def test_write_off_type(self, session, reagent, receive, stock_service, test_actor_id, movement_type):
        lot = receive(reagent.id, "L1", 2).lot
        stock_service.delete_lot(
            lot.id, test_actor_id, movement_type=movement_type, notes="Freezer failure"
        )

        write_off = _movements(session, lot.id)[-1]
        assert write_off.movement_type == MovementType(movement_type).value
        assert write_off.notes == "Freezer failure"

    @pytest.mark.parametrize("movement_type", ["out", "in", "bogus"])
    def test_rejects_non_write_off_type(
        self, session, reagent, receive, stock_service, test_actor_id, movement_type
    ):
        lot = receive(reagent.id, "L1", 2).lot
        with pytest.raises(InvalidMovementTypeError):
            stock_service.delete_lot(lot.id, test_actor_id, movement_type=movement_type)
        assert session.get(Lot, lot.id).is_active is True
        assert session.get(Lot, lot.id).quantity == 2

    def test_empty_lot_has_no_write_off(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        lot = receive(reagent.id, "L1", 2).lot
        stock_service.stock_out(lot.id, 2, test_actor_id)
        stock_service.delete_lot(lot.id, test_actor_id)

        assert len(_movements(session, lot.id)) == 2
        assert session.get(Lot, lot.id).is_active is False

    def test_twice_is_not_found(self, reagent, receive, stock_service, test_actor_id):
        lot = receive(reagent.id, "L1", 2).lot
        stock_service.delete_lot(lot.id, test_actor_id)
        with pytest.raises(LotNotFoundError):
            stock_service.delete_lot(lot.id, test_actor_id)

    def test_lot_number_reusable_after_delete(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        old = receive(reagent.id, "L1", 2).lot
        stock_service.delete_lot(old.id, test_actor_id)

        with pytest.raises(MissingLotMetadataError):
            stock_service.stock_in(reagent.id, "L1", 1, test_actor_id)

        new = receive(reagent.id, "L1", 1)
        assert new.action is StockInAction.CREATED
        assert new.lot.id != old.id
        assert len(_lots(session, reagent.id)) == 2
        assert len(_lots(session, reagent.id, active_only=True)) == 1
        _assert_ledger_consistent(session)


# =============================================================================
# delete_reagent
# =============================================================================


class TestDeleteReagent:
    def test_cascades_to_all_lots(
        self, session, reagent, receive, stock_service, test_actor_id
    ):
        lot_a = receive(reagent.id, "A", 7).lot
        lot_b = receive(reagent.id, "B", 3).lot
        lot_c = receive(reagent.id, "C", 1).lot
        stock_service.stock_out(lot_c.id, 1, test_actor_id)

        stock_service.delete_reagent(reagent.id, test_actor_id)

        deleted = session.get(Reagent, reagent.id)
        assert deleted.is_active is False
        assert deleted.total_quantity == 0
        assert _lots(session, reagent.id, active_only=True) == []

        write_offs = session.execute(
            select(StockMovement).where(
                StockMovement.reagent_id == reagent.id,
                StockMovement.movement_type == MovementType.ADJUSTMENT.value,
            )
        ).scalars().all()
        assert sorted(m.quantity for m in write_offs) == [-7, -3]
        assert {m.lot_id for m in write_offs} == {lot_a.id, lot_b.id}
        assert all(m.notes == "Reagent deleted" for m in write_offs)
        _assert_ledger_consistent(session)

    def test_twice_is_not_found(self, reagent, stock_service, test_actor_id):
        stock_service.delete_reagent(reagent.id, test_actor_id)
        with pytest.raises(ReagentNotFoundError):
            stock_service.delete_reagent(reagent.id, test_actor_id)

    def test_lots_of_deleted_reagent_not_found(
        self, reagent, receive, stock_service, test_actor_id
    ):
        lot = receive(reagent.id, "A", 2).lot
        stock_service.delete_reagent(reagent.id, test_actor_id)
        with pytest.raises(LotNotFoundError):
            stock_service.stock_out(lot.id, 1, test_actor_id)

    def test_audit_entry_written(self, session, reagent, receive, stock_service, test_actor_id):
        receive(reagent.id, "A", 2)
        stock_service.delete_reagent(reagent.id, test_actor_id)

        entry = session.execute(
            select(AuditLogEntry).where(
                AuditLogEntry.resource_id == reagent.id,
                AuditLogEntry.action == "delete",
            )
        ).scalar_one()
        assert "1 lot(s) written off" in entry.description


# =============================================================================
# Unit of work
# =============================================================================


class TestUnitOfWork:
    def test_logs_started_and_completed(
        self, reagent, receive, captured_logs, test_actor_id
    ):
        receive(reagent.id, "L1", 10)

        logs = captured_logs()
        started = [r for r in logs if r["message"] == "stock_in_started"]
        completed = [r for r in logs if r["message"] == "stock_in_completed"]
        assert len(started) == 1
        assert len(completed) == 1
        assert completed[0]["correlation_id"] == started[0]["correlation_id"]
        assert completed[0]["actor_id"] == str(test_actor_id)
        assert completed[0]["reagent_id"] == str(reagent.id)
        assert completed[0]["action"] == "created"
        assert completed[0]["reagent_total"] == 10
        assert completed[0]["duration_ms"] >= 0

    def test_each_command_gets_new_correlation_id(self, reagent, receive, captured_logs):
        receive(reagent.id, "L1", 1)
        receive(reagent.id, "L1", 1)

        ids = {
            r["correlation_id"]
            for r in captured_logs()
            if r["message"] == "stock_in_completed"
        }
        assert len(ids) == 2

    def test_failure_logged_with_code(
        self, reagent, receive, stock_service, test_actor_id, captured_logs
    ):
        lot = receive(reagent.id, "L1", 1).lot
        with pytest.raises(InsufficientStockError):
            stock_service.stock_out(lot.id, 2, test_actor_id)

        failed = [r for r in captured_logs() if r["message"] == "stock_operation_failed"]
        assert len(failed) == 1
        assert failed[0]["level"] == "WARNING"
        assert failed[0]["operation"] == "stock_out"
        assert failed[0]["exc_code"] == "INSUFFICIENT_STOCK"

    def test_manual_commit_mode(self, session, reagent, clock, test_actor_id):
        service = StockOperationService(session, clock=clock, auto_commit=False)
        service.stock_in(
            reagent.id, "L1", 5, test_actor_id,
            expiry_date=EXPIRY, date_of_reception=RECEPTION,
        )
        assert session.get(Reagent, reagent.id).total_quantity == 5

        session.rollback()

        assert _lots(session, reagent.id) == []
        assert session.get(Reagent, reagent.id).total_quantity == 0
