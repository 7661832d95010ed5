"""
Module: reagent_ledger.models.stock_movement
Responsibility: ORM persistence for the append-only stock movement ledger.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: rows are never updated or deleted (db/immutability.py).
    - quantity_after = quantity_before + quantity, both snapshots >= 0, and
      quantity is never 0 (check constraints).
    - sequence_number is unique per lot (uq_movement_lot_sequence) and
      strictly increasing from 1 in write order.
    - Replaying a lot's movements in (performed_at, sequence_number) order
      from 0 reproduces the lot's current quantity.

Audit relevance:
    lot_number and expiry_date are snapshots of the lot at write time, so
    history stays readable after the lot is deleted.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reagent_ledger.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Kind of stock change.

    Contract: IN is always positive; OUT, EXPIRED and DAMAGED are always
    negative; ADJUSTMENT may go either way.
    """

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    EXPIRED = "expired"
    DAMAGED = "damaged"


# Types allowed for the write-off recorded when a lot with stock is deleted.
WRITE_OFF_TYPES: frozenset[MovementType] = frozenset(
    {MovementType.ADJUSTMENT, MovementType.EXPIRED, MovementType.DAMAGED}
)


class StockMovement(Base):
    """
    One immutable change to one lot's quantity.

    Guarantees:
        - Every committed change to Lot.quantity has exactly one row here.
        - Rows are never modified after insert.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("lot_id", "sequence_number", name="uq_movement_lot_sequence"),
        CheckConstraint("quantity <> 0", name="ck_movement_quantity_non_zero"),
        CheckConstraint("quantity_before >= 0", name="ck_movement_before_non_negative"),
        CheckConstraint("quantity_after >= 0", name="ck_movement_after_non_negative"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity",
            name="ck_movement_arithmetic",
        ),
        Index("idx_movement_reagent_time", "reagent_id", "performed_at"),
        Index("idx_movement_lot", "lot_id"),
        Index("idx_movement_type", "movement_type"),
    )

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("lots.id"),
        nullable=True,
    )

    reagent_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("reagents.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    # Signed delta applied to the lot
    quantity: Mapped[int] = mapped_column(nullable=False)

    quantity_before: Mapped[int] = mapped_column(nullable=False)

    quantity_after: Mapped[int] = mapped_column(nullable=False)

    sequence_number: Mapped[int] = mapped_column(nullable=False)

    # Snapshots of the lot at write time
    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    performed_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} {self.quantity:+d} "
            f"lot={self.lot_number} #{self.sequence_number}>"
        )
