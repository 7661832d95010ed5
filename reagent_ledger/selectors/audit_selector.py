"""AuditSelector -- paginated, filterable audit trail."""

from sqlalchemy import func, or_, select

from reagent_ledger.domain.dtos import AuditLogFilters, AuditLogInfo, AuditLogPage
from reagent_ledger.models.audit_log import AuditLogEntry
from reagent_ledger.selectors.base import DATE_RANGES, BaseSelector

DEFAULT_AUDIT_PAGE_SIZE = 20
MAX_AUDIT_PAGE_SIZE = 100


class AuditSelector(BaseSelector[AuditLogEntry]):
    def list_logs(
        self,
        filters: AuditLogFilters | None = None,
        page: int = 1,
        limit: int = DEFAULT_AUDIT_PAGE_SIZE,
    ) -> AuditLogPage:
        """
        Audit entries, most recent first.

        ``limit`` is capped at 100.  ``date_range`` accepts 7d, 30d, 90d or
        6m; an unknown range does not filter.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_AUDIT_PAGE_SIZE)
        filters = filters or AuditLogFilters()

        conditions = []
        if filters.action:
            conditions.append(AuditLogEntry.action == filters.action)
        if filters.resource_type:
            conditions.append(AuditLogEntry.resource_type == filters.resource_type)
        if filters.actor_id is not None:
            conditions.append(AuditLogEntry.actor_id == filters.actor_id)
        if filters.date_range in DATE_RANGES:
            conditions.append(
                AuditLogEntry.performed_at >= self.range_start(filters.date_range)
            )
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    AuditLogEntry.description.ilike(pattern),
                    AuditLogEntry.action.ilike(pattern),
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(AuditLogEntry).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(AuditLogEntry)
            .where(*conditions)
            .order_by(AuditLogEntry.performed_at.desc(), AuditLogEntry.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()

        return AuditLogPage(
            items=tuple(AuditLogInfo.from_model(r) for r in rows),
            total=total,
            page=page,
            limit=limit,
        )
