"""
DTOs -- immutable data transfer objects returned by the ledger.

Responsibility:
    Defines the frozen data structures that services and selectors hand to
    callers: catalog and lot snapshots, movement records, command results,
    query filters, pages, and integrity check results.

Architecture position:
    Ledger > Domain -- pure, no database access.  from_model() class
    methods are boundary converters invoked from services and selectors.

Invariants enforced:
    - Callers never receive ORM entities, so nothing outside a service can
      mutate a lot or reagent behind the ledger's back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from reagent_ledger.domain.status import ExpiryStatus, StockStatus, stock_status

if TYPE_CHECKING:
    from reagent_ledger.models.audit_log import AuditLogEntry as AuditLogEntryModel
    from reagent_ledger.models.lot import Lot as LotModel
    from reagent_ledger.models.reagent import Reagent as ReagentModel
    from reagent_ledger.models.stock_movement import (
        MovementType,
        StockMovement as StockMovementModel,
    )


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class ReagentInfo:
    """Catalog item with its current aggregate stock."""

    id: UUID
    name: str
    reference: str
    description: str | None
    supplier: str
    category: str
    unit: str
    storage_location: str
    storage_temperature: str
    sector: str
    machine: str | None
    minimum_stock: int
    total_quantity: int
    is_active: bool

    @property
    def stock_status(self) -> StockStatus:
        return stock_status(self.total_quantity, self.minimum_stock)

    @property
    def is_low_stock(self) -> bool:
        return self.total_quantity <= self.minimum_stock

    @classmethod
    def from_model(cls, model: ReagentModel) -> ReagentInfo:
        return cls(
            id=model.id,
            name=model.name,
            reference=model.reference,
            description=model.description,
            supplier=model.supplier,
            category=model.category,
            unit=model.unit,
            storage_location=model.storage_location,
            storage_temperature=model.storage_temperature,
            sector=model.sector,
            machine=model.machine,
            minimum_stock=model.minimum_stock,
            total_quantity=model.total_quantity,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class LotInfo:
    """One lot as of the end of the operation that returned it."""

    id: UUID
    reagent_id: UUID
    lot_number: str
    quantity: int
    expiry_date: date | None
    date_of_reception: date | None
    shelf_life_days: int | None
    is_active: bool

    @classmethod
    def from_model(cls, model: LotModel) -> LotInfo:
        return cls(
            id=model.id,
            reagent_id=model.reagent_id,
            lot_number=model.lot_number,
            quantity=model.quantity,
            expiry_date=model.expiry_date,
            date_of_reception=model.date_of_reception,
            shelf_life_days=model.shelf_life_days,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class MovementRecord:
    """One stock movement, exactly as written to the ledger."""

    id: UUID
    lot_id: UUID | None
    reagent_id: UUID
    movement_type: MovementType
    quantity: int
    quantity_before: int
    quantity_after: int
    sequence_number: int
    lot_number: str | None
    expiry_date: date | None
    performed_by: UUID
    performed_at: datetime
    notes: str | None

    @classmethod
    def from_model(cls, model: StockMovementModel) -> MovementRecord:
        from reagent_ledger.models.stock_movement import MovementType

        return cls(
            id=model.id,
            lot_id=model.lot_id,
            reagent_id=model.reagent_id,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            quantity_before=model.quantity_before,
            quantity_after=model.quantity_after,
            sequence_number=model.sequence_number,
            lot_number=model.lot_number,
            expiry_date=model.expiry_date,
            performed_by=model.performed_by,
            performed_at=model.performed_at,
            notes=model.notes,
        )


@dataclass(frozen=True)
class AuditLogInfo:
    id: UUID
    action: str
    resource_type: str
    resource_id: UUID
    description: str
    actor_id: UUID
    performed_at: datetime

    @classmethod
    def from_model(cls, model: AuditLogEntryModel) -> AuditLogInfo:
        from reagent_ledger.models.audit_log import AuditAction, AuditResourceType

        return cls(
            id=model.id,
            action=AuditAction(model.action).value,
            resource_type=AuditResourceType(model.resource_type).value,
            resource_id=model.resource_id,
            description=model.description,
            actor_id=model.actor_id,
            performed_at=model.performed_at,
        )


# =============================================================================
# Command results
# =============================================================================


class StockInAction(str, Enum):
    """Whether a stock-in opened a new lot or added to an existing one."""

    CREATED = "created"
    INCREMENTED = "incremented"


@dataclass(frozen=True)
class StockInResult:
    lot: LotInfo
    action: StockInAction
    movement: MovementRecord
    reagent_total: int


@dataclass(frozen=True)
class StockOutResult:
    lot: LotInfo
    movement: MovementRecord
    reagent_total: int


# =============================================================================
# Query filters and pages
# =============================================================================


@dataclass(frozen=True)
class ReagentFilters:
    """Reagent list filters.  None means "do not filter"."""

    sector: str | None = None
    machine: str | None = None
    supplier: str | None = None
    storage_location: str | None = None
    search: str | None = None
    low_stock: bool = False
    has_expired_lots: bool = False


@dataclass(frozen=True)
class ReagentPage:
    items: tuple[ReagentInfo, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


@dataclass(frozen=True)
class MovementFilters:
    """Movement history filters.  ``until`` is exclusive."""

    movement_type: MovementType | None = None
    lot_id: UUID | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None


@dataclass(frozen=True)
class AuditLogFilters:
    action: str | None = None
    resource_type: str | None = None
    actor_id: UUID | None = None
    date_range: str | None = None
    search: str | None = None


@dataclass(frozen=True)
class AuditLogPage:
    items: tuple[AuditLogInfo, ...]
    total: int
    page: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


@dataclass(frozen=True)
class FilterOptions:
    """Distinct values for populating list filters."""

    suppliers: tuple[str, ...]
    storage_locations: tuple[str, ...]
    sectors: tuple[str, ...]
    machines: tuple[str, ...]


@dataclass(frozen=True)
class ExpiringLot:
    """An active lot with stock, close to or past its expiry date."""

    lot: LotInfo
    reagent_name: str
    reagent_reference: str
    unit: str
    status: ExpiryStatus
    days_until: int | None


@dataclass(frozen=True)
class InventoryRow:
    """One reagent with its lots, as consumed by the export pipeline."""

    reagent: ReagentInfo
    lots: tuple[LotInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MovementTrendBucket:
    """Stock in/out totals for one day, week or month."""

    period_key: str
    label: str
    stock_in: int
    stock_out: int


@dataclass(frozen=True)
class ConsumedItem:
    reagent_id: UUID
    name: str
    reference: str
    unit: str
    consumed: int


@dataclass(frozen=True)
class FieldConsumption:
    """Stock-out quantity for one sector or machine."""

    value: str
    consumed: int


# =============================================================================
# Inventory composition
# =============================================================================


@dataclass(frozen=True)
class CategoryShare:
    category: str
    count: int
    total_quantity: int


@dataclass(frozen=True)
class StockCoverage:
    """
    Active reagents by stock level.

    ``below_minimum`` counts reagents with some stock at or below their
    minimum; empty reagents are only in ``out_of_stock``.
    """

    above_minimum: int
    below_minimum: int
    out_of_stock: int


@dataclass(frozen=True)
class SectorBreakdown:
    sector: str
    total_items: int
    alert_items: int
    total_quantity: int


@dataclass(frozen=True)
class StorageUsage:
    location: str
    count: int


@dataclass(frozen=True)
class MachineDependency:
    machine: str
    total_items: int
    alert_items: int


@dataclass(frozen=True)
class InventoryComposition:
    """
    Point-in-time breakdown of the active catalog.

    An alert item is a reagent at or below its minimum stock, or one with
    an expired lot that still holds stock.
    """

    total_items: int
    total_quantity: int
    category_distribution: tuple[CategoryShare, ...]
    stock_coverage: StockCoverage
    sector_breakdown: tuple[SectorBreakdown, ...]
    storage_utilization: tuple[StorageUsage, ...]
    machine_dependency: tuple[MachineDependency, ...]


# =============================================================================
# Integrity checks
# =============================================================================


@dataclass(frozen=True)
class AggregateCheck:
    """Stored reagent total vs. the sum of its active lots."""

    reagent_id: UUID
    stored_total: int
    computed_total: int

    @property
    def is_consistent(self) -> bool:
        return self.stored_total == self.computed_total


@dataclass(frozen=True)
class ReplayCheck:
    """Lot quantity vs. the replay of its movement history."""

    lot_id: UUID
    stored_quantity: int
    replayed_quantity: int
    movement_count: int
    broken_sequence_numbers: tuple[int, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_quantity == self.replayed_quantity
            and not self.broken_sequence_numbers
        )
