"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is only useful as history if it cannot be rewritten.
A lot's quantity must always equal the replay of its movements, and the
audit trail must show every committed change.  These listeners intercept
SQLAlchemy flushes and abort forbidden writes before any SQL is sent:

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|------------------------------------------------------------
StockMovement   | ALWAYS immutable: no update, no delete
AuditLogEntry   | ALWAYS immutable: no update, no delete
Lot             | Never hard-deleted; once inactive it cannot be reactivated
                | and its quantity cannot change
Reagent         | Never hard-deleted

===============================================================================
USAGE
===============================================================================

Called once at startup (reagent_config.bridges.start_ledger does this):

    from reagent_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from reagent_ledger.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from reagent_ledger.exceptions import ImmutabilityViolationError
from reagent_ledger.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_stock_movement_update(mapper, connection, target):
    """Stock movements are append-only."""
    _block(
        "StockMovement",
        target.id,
        "UPDATE",
        "Stock movements are immutable and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Stock movements cannot be deleted."""
    _block(
        "StockMovement",
        target.id,
        "DELETE",
        "Stock movements cannot be deleted",
    )


def _check_audit_log_update(mapper, connection, target):
    """Audit entries are append-only."""
    _block(
        "AuditLogEntry",
        target.id,
        "UPDATE",
        "Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    """Audit entries cannot be deleted."""
    _block(
        "AuditLogEntry",
        target.id,
        "DELETE",
        "Audit log entries cannot be deleted",
    )


def _check_lot_update(mapper, connection, target):
    """
    Prevent changes to a lot after it was deleted.

    The deletion itself (zero the quantity, then flip is_active in the same
    flush) is allowed: we look at the value BEFORE this flush.
    """
    active_history = get_history(target, "is_active")
    if active_history.deleted:
        was_active = active_history.deleted[0]
    elif active_history.unchanged:
        was_active = active_history.unchanged[0]
    else:
        return

    if was_active:
        return

    if active_history.added and active_history.added[0]:
        _block("Lot", target.id, "UPDATE", "Deleted lots cannot be reactivated")

    if get_history(target, "quantity").has_changes():
        _block(
            "Lot",
            target.id,
            "UPDATE",
            "Quantity of a deleted lot cannot change",
        )


def _check_lot_delete(mapper, connection, target):
    """Lots are soft-deleted only."""
    _block(
        "Lot",
        target.id,
        "DELETE",
        "Lots cannot be hard-deleted; use StockOperationService.delete_lot",
    )


def _check_reagent_delete(mapper, connection, target):
    """Reagents are soft-deleted only."""
    _block(
        "Reagent",
        target.id,
        "DELETE",
        "Reagents cannot be hard-deleted; use StockOperationService.delete_reagent",
    )


def _listeners():
    from reagent_ledger.models.audit_log import AuditLogEntry
    from reagent_ledger.models.lot import Lot
    from reagent_ledger.models.reagent import Reagent
    from reagent_ledger.models.stock_movement import StockMovement

    return [
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (AuditLogEntry, "before_update", _check_audit_log_update),
        (AuditLogEntry, "before_delete", _check_audit_log_delete),
        (Lot, "before_update", _check_lot_update),
        (Lot, "before_delete", _check_lot_delete),
        (Reagent, "before_delete", _check_reagent_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener that is already registered is skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
