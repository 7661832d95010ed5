"""
ORM immutability listeners.

Stock movements and audit entries are append-only; lots and reagents are
only ever soft-deleted, and a deleted lot is frozen.
"""

import pytest
from sqlalchemy import select

from reagent_ledger.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from reagent_ledger.exceptions import ImmutabilityViolationError
from reagent_ledger.models.audit_log import AuditLogEntry
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.models.stock_movement import StockMovement


@pytest.fixture
def stocked_lot(reagent, receive):
    return receive(reagent.id, "IMM-1", 10).lot


def _first_movement(session, lot_id) -> StockMovement:
    return session.execute(
        select(StockMovement).where(StockMovement.lot_id == lot_id)
    ).scalars().first()


class TestStockMovementImmutability:
    def test_update_blocked(self, session, stocked_lot):
        movement = _first_movement(session, stocked_lot.id)
        movement.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockMovement"
        session.rollback()

    def test_delete_blocked(self, session, stocked_lot):
        session.delete(_first_movement(session, stocked_lot.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_violation_is_logged(self, session, stocked_lot, captured_logs):
        movement = _first_movement(session, stocked_lot.id)
        movement.quantity = 999
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [
            r for r in captured_logs() if r["message"] == "immutability_violation_blocked"
        ]
        assert blocked
        assert blocked[0]["entity_type"] == "StockMovement"


class TestAuditLogImmutability:
    def test_update_blocked(self, session, reagent):
        entry = session.execute(select(AuditLogEntry)).scalars().first()
        entry.description = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, reagent):
        entry = session.execute(select(AuditLogEntry)).scalars().first()
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestSoftDeleteOnly:
    def test_lot_hard_delete_blocked(self, session, stocked_lot):
        session.delete(session.get(Lot, stocked_lot.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_reagent_hard_delete_blocked(self, session, reagent):
        session.delete(session.get(Reagent, reagent.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestDeletedLotFrozen:
    def test_reactivation_blocked(
        self, session, stock_service, stocked_lot, test_actor_id
    ):
        stock_service.delete_lot(stocked_lot.id, test_actor_id)

        lot = session.get(Lot, stocked_lot.id)
        assert lot.is_active is False
        lot.is_active = True
        with pytest.raises(ImmutabilityViolationError, match="reactivated"):
            session.flush()
        session.rollback()

    def test_quantity_change_blocked(
        self, session, stock_service, stocked_lot, test_actor_id
    ):
        stock_service.delete_lot(stocked_lot.id, test_actor_id)

        lot = session.get(Lot, stocked_lot.id)
        lot.quantity = 5
        with pytest.raises(ImmutabilityViolationError, match="deleted lot"):
            session.flush()
        session.rollback()

    def test_active_lot_updates_allowed(self, session, stocked_lot):
        lot = session.get(Lot, stocked_lot.id)
        lot.expiry_date = None
        session.flush()
        session.rollback()


class TestListenerRegistration:
    def test_register_is_idempotent(self, session, stocked_lot):
        register_immutability_listeners()
        register_immutability_listeners()

        movement = _first_movement(session, stocked_lot.id)
        movement.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_unregister_allows_updates(self, session, stocked_lot):
        unregister_immutability_listeners()
        try:
            movement = _first_movement(session, stocked_lot.id)
            movement.notes = "rewritten"
            session.flush()
            session.rollback()
        finally:
            register_immutability_listeners()
