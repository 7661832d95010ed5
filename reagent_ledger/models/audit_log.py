"""
Module: reagent_ledger.models.audit_log
Responsibility: ORM persistence for the user-facing audit trail.

Every committed stock command and catalog edit writes one row here in the
same transaction, so an entry exists if and only if the change committed.
Rows are append-only (db/immutability.py).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reagent_ledger.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """What happened."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"


class AuditResourceType(str, Enum):
    """What it happened to."""

    REAGENT = "reagent"
    LOT = "lot"


class AuditLogEntry(Base):
    """One audit trail row."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_performed_at", "performed_at"),
        Index("idx_audit_resource", "resource_type", "resource_id"),
        Index("idx_audit_actor", "actor_id"),
    )

    action: Mapped[AuditAction] = mapped_column(String(20), nullable=False)

    resource_type: Mapped[AuditResourceType] = mapped_column(String(20), nullable=False)

    resource_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    performed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} {self.resource_type} {self.resource_id}>"
