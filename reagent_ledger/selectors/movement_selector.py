"""
MovementSelector -- read side of the movement ledger.

History views, per-lot replay order, and consumption analytics.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select

from reagent_ledger.domain.clock import Clock
from reagent_ledger.domain.dtos import (
    ConsumedItem,
    FieldConsumption,
    MovementFilters,
    MovementRecord,
    MovementTrendBucket,
)
from reagent_ledger.models.reagent import Reagent
from reagent_ledger.models.stock_movement import MovementType, StockMovement
from reagent_ledger.selectors.base import BaseSelector

DEFAULT_HISTORY_LIMIT = 100

TREND_PERIODS = ("day", "week", "month")

CONSUMPTION_FIELDS = ("sector", "machine")


class MovementSelector(BaseSelector[StockMovement]):
    def __init__(
        self,
        session,
        clock: Clock | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        super().__init__(session, clock)
        self.history_limit = history_limit

    def history(
        self, reagent_id: UUID, filters: MovementFilters | None = None
    ) -> list[MovementRecord]:
        """
        Movements of one reagent (all its lots), most recent first.

        Deleted lots are included: their write-off movements are part of
        the reagent's history.
        """
        filters = filters or MovementFilters()
        stmt = select(StockMovement).where(StockMovement.reagent_id == reagent_id)

        if filters.movement_type is not None:
            stmt = stmt.where(
                StockMovement.movement_type == MovementType(filters.movement_type).value
            )
        if filters.lot_id is not None:
            stmt = stmt.where(StockMovement.lot_id == filters.lot_id)
        if filters.since is not None:
            stmt = stmt.where(StockMovement.performed_at >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(StockMovement.performed_at < filters.until)

        stmt = stmt.order_by(
            StockMovement.performed_at.desc(),
            StockMovement.sequence_number.desc(),
        ).limit(filters.limit or self.history_limit)

        return [MovementRecord.from_model(m) for m in self.session.execute(stmt).scalars()]

    def lot_movements(self, lot_id: UUID) -> list[MovementRecord]:
        """All movements of one lot in replay order."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.lot_id == lot_id)
            .order_by(StockMovement.sequence_number)
        ).scalars()
        return [MovementRecord.from_model(m) for m in rows]

    def movement_trends(
        self,
        date_range: str = "30d",
        period: str = "month",
        sector: str | None = None,
        machine: str | None = None,
    ) -> list[MovementTrendBucket]:
        """
        Stock-in and stock-out quantities bucketed by day, week or month.

        Weeks start on Sunday.  Only IN and OUT movements count; write-offs
        from deletions are not consumption.
        """
        if period not in TREND_PERIODS:
            raise ValueError(f"period must be one of {', '.join(TREND_PERIODS)}")

        stmt = (
            select(
                StockMovement.performed_at,
                StockMovement.movement_type,
                StockMovement.quantity,
            )
            .join(Reagent, Reagent.id == StockMovement.reagent_id)
            .where(
                StockMovement.performed_at >= self.range_start(date_range),
                StockMovement.movement_type.in_(
                    [MovementType.IN.value, MovementType.OUT.value]
                ),
            )
        )
        if sector:
            stmt = stmt.where(Reagent.sector == sector)
        if machine:
            stmt = stmt.where(Reagent.machine == machine)

        buckets: dict[str, dict] = {}
        for performed_at, movement_type, quantity in self.session.execute(stmt):
            key, label = _bucket(performed_at, period)
            bucket = buckets.setdefault(key, {"label": label, "in": 0, "out": 0})
            bucket[MovementType(movement_type).value] += abs(quantity)

        return [
            MovementTrendBucket(
                period_key=key,
                label=b["label"],
                stock_in=b["in"],
                stock_out=b["out"],
            )
            for key, b in sorted(buckets.items())
        ]

    def top_consumed(self, date_range: str = "30d", limit: int = 10) -> list[ConsumedItem]:
        """Reagents ranked by stock-out quantity over the range."""
        consumed = func.sum(-StockMovement.quantity).label("consumed")
        rows = self.session.execute(
            select(
                Reagent.id,
                Reagent.name,
                Reagent.reference,
                Reagent.unit,
                consumed,
            )
            .select_from(StockMovement)
            .join(Reagent, Reagent.id == StockMovement.reagent_id)
            .where(
                StockMovement.movement_type == MovementType.OUT.value,
                StockMovement.performed_at >= self.range_start(date_range),
            )
            .group_by(Reagent.id, Reagent.name, Reagent.reference, Reagent.unit)
            .order_by(consumed.desc(), Reagent.name)
            .limit(limit)
        ).all()

        return [
            ConsumedItem(
                reagent_id=row.id,
                name=row.name,
                reference=row.reference,
                unit=row.unit,
                consumed=int(row.consumed),
            )
            for row in rows
        ]

    def consumption_by(self, field: str, date_range: str = "30d") -> list[FieldConsumption]:
        """
        Stock-out quantity grouped by the reagent's sector or machine.

        Largest consumer first.  Reagents without a value (no machine) are
        left out.
        """
        if field not in CONSUMPTION_FIELDS:
            raise ValueError(f"field must be one of {', '.join(CONSUMPTION_FIELDS)}")

        column = getattr(Reagent, field)
        consumed = func.sum(-StockMovement.quantity).label("consumed")
        rows = self.session.execute(
            select(column, consumed)
            .select_from(StockMovement)
            .join(Reagent, Reagent.id == StockMovement.reagent_id)
            .where(
                StockMovement.movement_type == MovementType.OUT.value,
                StockMovement.performed_at >= self.range_start(date_range),
                column.is_not(None),
                column != "",
            )
            .group_by(column)
            .order_by(consumed.desc(), column)
        ).all()

        return [FieldConsumption(value=value, consumed=int(total)) for value, total in rows]


def _bucket(performed_at: datetime, period: str) -> tuple[str, str]:
    day = performed_at.date()
    if period == "day":
        return day.isoformat(), day.strftime("%b %d")
    if period == "week":
        # isoweekday: Monday=1 ... Sunday=7
        start = day - timedelta(days=day.isoweekday() % 7)
        return start.isoformat(), f"Week of {start.strftime('%b %d')}"
    return day.strftime("%Y-%m"), day.strftime("%b %Y")
