"""
Service layer for the reagent catalog.

Creates and edits reagent master data.  Stock fields (total_quantity,
is_active) are never writable here: they belong to the stock ledger.

Returns ReagentInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select

from reagent_ledger.domain.clock import Clock, SystemClock
from reagent_ledger.domain.dtos import ReagentInfo
from reagent_ledger.exceptions import (
    InvalidReagentDataError,
    ReagentNotFoundError,
    ReagentReferenceExistsError,
)
from reagent_ledger.logging_config import get_logger
from reagent_ledger.models.audit_log import AuditAction, AuditResourceType
from reagent_ledger.models.reagent import (
    DEFAULT_CATEGORY,
    DEFAULT_UNIT,
    REAGENT_UNITS,
    Reagent,
)
from reagent_ledger.services.audit_service import AuditService
from reagent_ledger.services.base import BaseService

logger = get_logger("services.reagent")

REQUIRED_TEXT_FIELDS = (
    "name",
    "reference",
    "supplier",
    "storage_location",
    "storage_temperature",
    "sector",
)

OPTIONAL_TEXT_FIELDS = ("description", "machine")

EDITABLE_FIELDS = frozenset(
    REQUIRED_TEXT_FIELDS
    + OPTIONAL_TEXT_FIELDS
    + ("category", "unit", "minimum_stock")
)


class ReagentService(BaseService[Reagent]):
    """
    Service for managing the reagent catalog.

    All public methods return ReagentInfo DTOs.  Methods flush; the caller
    commits (``session_scope()``).
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = AuditService(session, self._clock)

    def _get_by_id(self, reagent_id: UUID) -> Reagent:
        reagent = self.session.get(Reagent, reagent_id)
        if reagent is None:
            raise ReagentNotFoundError(str(reagent_id))
        return reagent

    def get_by_id(self, reagent_id: UUID) -> ReagentInfo:
        """
        Get a reagent by ID, deleted or not.

        Raises:
            ReagentNotFoundError: If no such reagent exists.
        """
        return ReagentInfo.from_model(self._get_by_id(reagent_id))

    def create_reagent(
        self,
        name: str,
        reference: str,
        supplier: str,
        storage_location: str,
        storage_temperature: str,
        sector: str,
        actor_id: UUID,
        description: str | None = None,
        category: str = DEFAULT_CATEGORY,
        unit: str = DEFAULT_UNIT,
        minimum_stock: int = 0,
        machine: str | None = None,
    ) -> ReagentInfo:
        """
        Create a catalog item with no stock.

        Raises:
            InvalidReagentDataError: A required field is blank, the unit is
                unknown, or minimum_stock is not a non-negative int.
            ReagentReferenceExistsError: The reference is already used.
        """
        values = _clean(
            {
                "name": name,
                "reference": reference,
                "supplier": supplier,
                "storage_location": storage_location,
                "storage_temperature": storage_temperature,
                "sector": sector,
                "description": description,
                "category": category,
                "unit": unit,
                "minimum_stock": minimum_stock,
                "machine": machine,
            }
        )
        self._ensure_reference_free(values["reference"])

        reagent = Reagent(
            **values,
            total_quantity=0,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(reagent)
        self.session.flush()

        self._audit.record(
            AuditAction.CREATE,
            AuditResourceType.REAGENT,
            reagent.id,
            f"Created reagent {reagent.name} ({reagent.reference})",
            actor_id,
        )
        logger.info(
            "reagent_created",
            extra={"reagent_id": str(reagent.id), "reference": reagent.reference},
        )
        return ReagentInfo.from_model(reagent)

    def update_reagent(
        self, reagent_id: UUID, actor_id: UUID, **changes: Any
    ) -> ReagentInfo:
        """
        Edit master data of an active reagent.

        Only fields in EDITABLE_FIELDS may be passed.

        Raises:
            InvalidReagentDataError: Unknown/forbidden field or bad value.
            ReagentNotFoundError: Missing or deleted reagent.
            ReagentReferenceExistsError: New reference already used.
        """
        forbidden = sorted(set(changes) - EDITABLE_FIELDS)
        if forbidden:
            raise InvalidReagentDataError(
                forbidden[0], "field cannot be changed through the catalog"
            )

        reagent = self._get_by_id(reagent_id)
        if not reagent.is_active:
            raise ReagentNotFoundError(str(reagent_id))

        values = _clean(changes, partial=True)
        if "reference" in values and values["reference"] != reagent.reference:
            self._ensure_reference_free(values["reference"])

        for field_name, value in values.items():
            setattr(reagent, field_name, value)
        reagent.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            AuditAction.UPDATE,
            AuditResourceType.REAGENT,
            reagent.id,
            f"Updated reagent {reagent.name}: {', '.join(sorted(values))}",
            actor_id,
        )
        logger.info(
            "reagent_updated",
            extra={"reagent_id": str(reagent.id), "fields": sorted(values)},
        )
        return ReagentInfo.from_model(reagent)

    def _ensure_reference_free(self, reference: str) -> None:
        existing = self.session.execute(
            select(Reagent.id).where(Reagent.reference == reference)
        ).first()
        if existing is not None:
            raise ReagentReferenceExistsError(reference)


def _clean(values: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """Validate and normalise catalog values."""
    cleaned: dict[str, Any] = {}
    for field_name, value in values.items():
        if field_name in REQUIRED_TEXT_FIELDS or field_name == "category":
            if not isinstance(value, str) or not value.strip():
                raise InvalidReagentDataError(field_name, "is required")
            cleaned[field_name] = value.strip()
        elif field_name in OPTIONAL_TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                raise InvalidReagentDataError(field_name, "must be text")
            cleaned[field_name] = (value or "").strip() or None
        elif field_name == "unit":
            if value not in REAGENT_UNITS:
                raise InvalidReagentDataError(
                    "unit", f"must be one of {', '.join(REAGENT_UNITS)}"
                )
            cleaned[field_name] = value
        elif field_name == "minimum_stock":
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidReagentDataError(
                    "minimum_stock", "must be a whole number, 0 or more"
                )
            cleaned[field_name] = value

    if not partial:
        missing = [f for f in REQUIRED_TEXT_FIELDS if f not in cleaned]
        if missing:
            raise InvalidReagentDataError(missing[0], "is required")
    return cleaned
