"""Audit trail writer.  One row per committed stock command or catalog edit."""

from uuid import UUID

from reagent_ledger.domain.clock import Clock, SystemClock
from reagent_ledger.logging_config import get_logger
from reagent_ledger.models.audit_log import AuditAction, AuditLogEntry, AuditResourceType
from reagent_ledger.services.base import BaseService

logger = get_logger("services.audit")


class AuditService(BaseService[AuditLogEntry]):
    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        action: AuditAction,
        resource_type: AuditResourceType,
        resource_id: UUID,
        description: str,
        actor_id: UUID,
    ) -> AuditLogEntry:
        """Add an audit entry to the current transaction."""
        entry = AuditLogEntry(
            action=AuditAction(action).value,
            resource_type=AuditResourceType(resource_type).value,
            resource_id=resource_id,
            description=description,
            actor_id=actor_id,
            performed_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "audit_entry_recorded",
            extra={
                "audit_action": entry.action,
                "resource_type": entry.resource_type,
                "resource_id": str(resource_id),
            },
        )
        return entry
