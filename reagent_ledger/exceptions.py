"""
Typed Exception Hierarchy for the Reagent Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (the web layer, the export job, the alert digest) must
react to failures by TYPE, not by parsing messages:

    try:
        service.stock_out(lot_id, 6, actor_id=user_id)
    except InsufficientStockError as e:
        flash(str(e))                       # message is safe to show verbatim
        api_response(code=e.code, available=e.available)

Every exception:
  1. Has a CODE class attribute (machine-readable, stable across releases)
  2. Carries structured DATA as attributes (lot_id, requested, available, ...)
  3. Has a message a user interface can display as-is

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReagentLedgerError (base)
    |
    +-- LedgerValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidLotNumberError
    |   +-- MissingLotMetadataError
    |   +-- InvalidMovementTypeError
    |   +-- InvalidReagentDataError
    |
    +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- ReagentNotFoundError
    |   +-- LotNotFoundError
    |
    +-- ReagentReferenceExistsError
    +-- StorageFailureError
    +-- MovementInvariantError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                          | When Raised
------------------------------|------------------------------------------------
INVALID_QUANTITY              | Quantity is not a positive integer
INVALID_LOT_NUMBER            | Lot number is empty
MISSING_LOT_METADATA          | New lot without expiry or reception date
INVALID_MOVEMENT_TYPE         | Unknown type, or not allowed for a write-off
INVALID_REAGENT_DATA          | Catalog data fails validation
INSUFFICIENT_STOCK            | Stock-out larger than the lot's quantity
REAGENT_NOT_FOUND             | Reagent missing or soft-deleted
LOT_NOT_FOUND                 | Lot missing or soft-deleted
REAGENT_REFERENCE_EXISTS      | Duplicate catalog reference
STORAGE_FAILURE               | Database write/commit failed, nothing applied
MOVEMENT_INVARIANT_VIOLATION  | Inconsistent movement arithmetic (caller bug)
IMMUTABILITY_VIOLATION        | Update/delete of an append-only record

===============================================================================
"""


class ReagentLedgerError(Exception):
    """Base exception for all reagent ledger errors."""

    code: str = "REAGENT_LEDGER_ERROR"


# Validation errors. Raised before any write happens.


class LedgerValidationError(ReagentLedgerError):
    """Base exception for rejected command input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(LedgerValidationError):
    """Quantity is zero, negative, or not an integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__("Quantity must be greater than 0")


class InvalidLotNumberError(LedgerValidationError):
    """Lot number is missing or blank."""

    code: str = "INVALID_LOT_NUMBER"

    def __init__(self, lot_number: object):
        self.lot_number = lot_number
        super().__init__("Lot number is required")


class MissingLotMetadataError(LedgerValidationError):
    """
    A stock-in would create a new lot but expiry or reception date is missing.

    Only raised for NEW lots. Incrementing an existing lot never needs dates.
    """

    code: str = "MISSING_LOT_METADATA"

    def __init__(self, lot_number: str, missing_fields: list[str]):
        self.lot_number = lot_number
        self.missing_fields = missing_fields
        super().__init__(
            f"Lot {lot_number} is new: {' and '.join(missing_fields)} "
            f"required to create it"
        )


class InvalidMovementTypeError(LedgerValidationError):
    """Movement type is unknown or not allowed for this operation."""

    code: str = "INVALID_MOVEMENT_TYPE"

    def __init__(self, movement_type: object, allowed: list[str]):
        self.movement_type = movement_type
        self.allowed = allowed
        super().__init__(
            f"Invalid movement type {movement_type!r}: expected one of "
            f"{', '.join(allowed)}"
        )


class InvalidReagentDataError(LedgerValidationError):
    """Reagent catalog data failed validation."""

    code: str = "INVALID_REAGENT_DATA"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for {field}: {reason}")


class InsufficientStockError(ReagentLedgerError):
    """Stock-out requested more than the lot holds. Nothing was changed."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        lot_id: str,
        lot_number: str,
        requested: int,
        available: int,
    ):
        self.lot_id = lot_id
        self.lot_number = lot_number
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock in this lot: requested {requested}, "
            f"available {available}"
        )


# Lookup errors


class NotFoundError(ReagentLedgerError):
    """Base exception for missing or soft-deleted records."""

    code: str = "NOT_FOUND"


class ReagentNotFoundError(NotFoundError):
    """Reagent does not exist or has been deleted."""

    code: str = "REAGENT_NOT_FOUND"

    def __init__(self, reagent_id: str):
        self.reagent_id = reagent_id
        super().__init__(f"Reagent not found: {reagent_id}")


class LotNotFoundError(NotFoundError):
    """Lot does not exist or has been deleted."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}")


class ReagentReferenceExistsError(ReagentLedgerError):
    """Another reagent already uses this catalog reference."""

    code: str = "REAGENT_REFERENCE_EXISTS"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__("An item with this reference already exists.")


class StorageFailureError(ReagentLedgerError):
    """
    The database rejected a write or the commit failed.

    The whole operation was rolled back: no lot, movement, total, or audit
    change from this call is visible. Re-running the command is safe.
    The underlying SQLAlchemy error is chained as ``__cause__``.
    """

    code: str = "STORAGE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"{operation} failed, no changes were applied: {reason}"
        )


class MovementInvariantError(ReagentLedgerError):
    """
    A movement record would break ledger arithmetic.

    Indicates a programming error in a caller of MovementLedger, not bad
    user input.
    """

    code: str = "MOVEMENT_INVARIANT_VIOLATION"

    def __init__(self, lot_id: str | None, reason: str):
        self.lot_id = lot_id
        self.reason = reason
        super().__init__(f"Invalid movement for lot {lot_id}: {reason}")


class ImmutabilityViolationError(ReagentLedgerError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
