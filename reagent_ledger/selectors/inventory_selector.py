"""
InventorySelector -- current reagent and lot state.

Serves the reagent list and detail views, the alert digest (low stock,
expiring lots), the composition dashboard and the export pipeline
(inventory snapshot).  Everything here reads committed state; nothing is
locked.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select

from reagent_ledger.domain.clock import Clock
from reagent_ledger.domain.dtos import (
    CategoryShare,
    ExpiringLot,
    FilterOptions,
    InventoryComposition,
    InventoryRow,
    LotInfo,
    MachineDependency,
    ReagentFilters,
    ReagentInfo,
    ReagentPage,
    SectorBreakdown,
    StockCoverage,
    StorageUsage,
)
from reagent_ledger.domain.status import (
    CRITICAL_EXPIRY_DAYS,
    WARNING_EXPIRY_DAYS,
    expiry_status,
)
from reagent_ledger.exceptions import ReagentNotFoundError
from reagent_ledger.models.lot import Lot
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 25

UNSPECIFIED_LOCATION = "Unspecified"


class InventorySelector(BaseSelector[Reagent]):
    def __init__(
        self,
        session,
        clock: Clock | None = None,
        warning_days: int = WARNING_EXPIRY_DAYS,
        critical_days: int = CRITICAL_EXPIRY_DAYS,
    ):
        super().__init__(session, clock)
        self.warning_days = warning_days
        self.critical_days = critical_days

    # -------------------------------------------------------------------------
    # Reagents
    # -------------------------------------------------------------------------

    def get_reagent(self, reagent_id: UUID) -> ReagentInfo:
        """Active reagent by id."""
        reagent = self.session.execute(
            select(Reagent).where(Reagent.id == reagent_id, Reagent.is_active.is_(True))
        ).scalar_one_or_none()
        if reagent is None:
            raise ReagentNotFoundError(str(reagent_id))
        return ReagentInfo.from_model(reagent)

    def list_reagents(
        self,
        filters: ReagentFilters | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ReagentPage:
        """
        One page of active reagents, ordered by name.

        Raises:
            ValueError: page or limit below 1.
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        filters = filters or ReagentFilters()

        conditions = [Reagent.is_active.is_(True)]
        if filters.sector:
            conditions.append(Reagent.sector == filters.sector)
        if filters.machine:
            conditions.append(Reagent.machine == filters.machine)
        if filters.supplier:
            conditions.append(Reagent.supplier.ilike(f"%{filters.supplier}%"))
        if filters.storage_location:
            conditions.append(
                Reagent.storage_location.ilike(f"%{filters.storage_location}%")
            )
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    Reagent.name.ilike(pattern),
                    Reagent.reference.ilike(pattern),
                    Reagent.description.ilike(pattern),
                )
            )
        if filters.low_stock:
            conditions.append(Reagent.total_quantity <= Reagent.minimum_stock)
        if filters.has_expired_lots:
            conditions.append(
                exists().where(
                    Lot.reagent_id == Reagent.id,
                    Lot.is_active.is_(True),
                    Lot.expiry_date < self.clock.today(),
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(Reagent).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(Reagent)
            .where(*conditions)
            .order_by(Reagent.name, Reagent.reference)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()

        return ReagentPage(
            items=tuple(ReagentInfo.from_model(r) for r in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def low_stock_reagents(self) -> list[ReagentInfo]:
        """Active reagents at or below their minimum stock, emptiest first."""
        rows = self.session.execute(
            select(Reagent)
            .where(
                Reagent.is_active.is_(True),
                Reagent.total_quantity <= Reagent.minimum_stock,
            )
            .order_by(Reagent.total_quantity, Reagent.name)
        ).scalars()
        return [ReagentInfo.from_model(r) for r in rows]

    def filter_options(self) -> FilterOptions:
        """Distinct values of the list filters among active reagents."""

        def distinct(column) -> tuple[str, ...]:
            values = self.session.execute(
                select(column)
                .where(Reagent.is_active.is_(True), column.is_not(None))
                .distinct()
                .order_by(column)
            ).scalars()
            return tuple(v for v in values if v)

        return FilterOptions(
            suppliers=distinct(Reagent.supplier),
            storage_locations=distinct(Reagent.storage_location),
            sectors=distinct(Reagent.sector),
            machines=distinct(Reagent.machine),
        )

    # -------------------------------------------------------------------------
    # Lots
    # -------------------------------------------------------------------------

    def lots_for_reagent(
        self,
        reagent_id: UUID,
        include_empty: bool = True,
        include_inactive: bool = False,
    ) -> list[LotInfo]:
        """Lots of a reagent, soonest expiry first, undated lots last."""
        stmt = select(Lot).where(Lot.reagent_id == reagent_id)
        if not include_inactive:
            stmt = stmt.where(Lot.is_active.is_(True))
        if not include_empty:
            stmt = stmt.where(Lot.quantity > 0)
        stmt = stmt.order_by(
            Lot.expiry_date.is_(None), Lot.expiry_date, Lot.lot_number
        )
        return [LotInfo.from_model(lot) for lot in self.session.execute(stmt).scalars()]

    def check_lot_exists(self, reagent_id: UUID, lot_number: str) -> LotInfo | None:
        """
        The active lot a stock-in with this number would increment, if any.

        Lets a form show "existing lot, dates will be kept" before submit.
        """
        lot = self.session.execute(
            select(Lot).where(
                Lot.reagent_id == reagent_id,
                Lot.lot_number == lot_number.strip(),
                Lot.is_active.is_(True),
            )
        ).scalar_one_or_none()
        return LotInfo.from_model(lot) if lot is not None else None

    def expiring_lots(self, within_days: int | None = None) -> list[ExpiringLot]:
        """
        Active lots with stock expiring on or before today + within_days.

        Already-expired lots are included.  Soonest first.
        """
        today = self.clock.today()
        horizon = today + timedelta(
            days=self.warning_days if within_days is None else within_days
        )
        rows = self.session.execute(
            select(Lot, Reagent.name, Reagent.reference, Reagent.unit)
            .join(Reagent, Reagent.id == Lot.reagent_id)
            .where(
                Lot.is_active.is_(True),
                Reagent.is_active.is_(True),
                Lot.quantity > 0,
                Lot.expiry_date.is_not(None),
                Lot.expiry_date <= horizon,
            )
            .order_by(Lot.expiry_date, Reagent.name)
        ).all()

        result = []
        for lot, name, reference, unit in rows:
            assessment = expiry_status(
                lot.expiry_date, today, self.critical_days, self.warning_days
            )
            result.append(
                ExpiringLot(
                    lot=LotInfo.from_model(lot),
                    reagent_name=name,
                    reagent_reference=reference,
                    unit=unit,
                    status=assessment.status,
                    days_until=assessment.days_until,
                )
            )
        return result

    def expired_lots_count(self) -> int:
        """Active lots with stock whose expiry date has passed."""
        return self.session.execute(
            select(func.count())
            .select_from(Lot)
            .where(
                Lot.is_active.is_(True),
                Lot.quantity > 0,
                Lot.expiry_date < self.clock.today(),
            )
        ).scalar_one()

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def inventory_composition(self) -> InventoryComposition:
        """
        Category, stock-level, sector, storage and machine breakdown of
        the active catalog as of now.

        Breakdowns are ordered by item count, largest first; categories
        by name.  Reagents without a machine are left out of the machine
        dependency.
        """
        reagents = self.session.execute(
            select(
                Reagent.id,
                Reagent.category,
                Reagent.sector,
                Reagent.machine,
                Reagent.storage_location,
                Reagent.total_quantity,
                Reagent.minimum_stock,
            )
            .where(Reagent.is_active.is_(True))
            .order_by(Reagent.name)
        ).all()

        expired_reagent_ids = set(
            self.session.execute(
                select(Lot.reagent_id)
                .where(
                    Lot.is_active.is_(True),
                    Lot.quantity > 0,
                    Lot.expiry_date.is_not(None),
                    Lot.expiry_date < self.clock.today(),
                )
                .distinct()
            ).scalars()
        )

        categories: dict[str, list[int]] = {}
        sectors: dict[str, list[int]] = {}
        locations: dict[str, int] = {}
        machines: dict[str, list[int]] = {}
        above = below = out = 0

        for r in reagents:
            alert = int(
                r.total_quantity <= r.minimum_stock or r.id in expired_reagent_ids
            )

            if r.total_quantity == 0:
                out += 1
            elif r.total_quantity <= r.minimum_stock:
                below += 1
            else:
                above += 1

            category = categories.setdefault(r.category, [0, 0])
            category[0] += 1
            category[1] += r.total_quantity

            sector = sectors.setdefault(r.sector, [0, 0, 0])
            sector[0] += 1
            sector[1] += alert
            sector[2] += r.total_quantity

            location = r.storage_location or UNSPECIFIED_LOCATION
            locations[location] = locations.get(location, 0) + 1

            if r.machine:
                machine = machines.setdefault(r.machine, [0, 0])
                machine[0] += 1
                machine[1] += alert

        return InventoryComposition(
            total_items=len(reagents),
            total_quantity=sum(r.total_quantity for r in reagents),
            category_distribution=tuple(
                CategoryShare(category=name, count=count, total_quantity=qty)
                for name, (count, qty) in sorted(categories.items())
            ),
            stock_coverage=StockCoverage(
                above_minimum=above, below_minimum=below, out_of_stock=out
            ),
            sector_breakdown=tuple(
                SectorBreakdown(
                    sector=name, total_items=items, alert_items=alerts, total_quantity=qty
                )
                for name, (items, alerts, qty) in _largest_first(sectors)
            ),
            storage_utilization=tuple(
                StorageUsage(location=name, count=count)
                for name, count in sorted(locations.items(), key=lambda kv: (-kv[1], kv[0]))
            ),
            machine_dependency=tuple(
                MachineDependency(machine=name, total_items=items, alert_items=alerts)
                for name, (items, alerts) in _largest_first(machines)
            ),
        )

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def inventory_snapshot(
        self,
        include_empty_lots: bool = True,
        include_expired_lots: bool = True,
    ) -> list[InventoryRow]:
        """Every active reagent with its active lots, ordered by name."""
        reagents = list(
            self.session.execute(
                select(Reagent)
                .where(Reagent.is_active.is_(True))
                .order_by(Reagent.name, Reagent.reference)
            ).scalars()
        )

        lot_conditions = [Lot.is_active.is_(True)]
        if not include_empty_lots:
            lot_conditions.append(Lot.quantity > 0)
        if not include_expired_lots:
            lot_conditions.append(
                or_(Lot.expiry_date.is_(None), Lot.expiry_date >= self.clock.today())
            )

        lots_by_reagent: dict[UUID, list[LotInfo]] = {}
        lots = self.session.execute(
            select(Lot)
            .where(and_(*lot_conditions))
            .order_by(Lot.expiry_date.is_(None), Lot.expiry_date, Lot.lot_number)
        ).scalars()
        for lot in lots:
            lots_by_reagent.setdefault(lot.reagent_id, []).append(LotInfo.from_model(lot))

        return [
            InventoryRow(
                reagent=ReagentInfo.from_model(r),
                lots=tuple(lots_by_reagent.get(r.id, ())),
            )
            for r in reagents
        ]


def _largest_first(groups: dict[str, list[int]]) -> list[tuple[str, list[int]]]:
    """Groups by item count (first counter) descending, then by name."""
    return sorted(groups.items(), key=lambda kv: (-kv[1][0], kv[0]))
