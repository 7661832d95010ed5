"""
Module: reagent_ledger.models.lot
Responsibility: ORM persistence for lots, the physical batches of a reagent
    that carry the authoritative stock quantity.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity >= 0 (ck_lot_quantity_non_negative).
    - At most one ACTIVE lot per (reagent_id, lot_number)
      (uq_lots_active_lot_number, a partial unique index).  A deleted lot's
      number may be reused by a later stock-in, which creates a new lot.
    - quantity equals the replay of the lot's stock_movements.
    - movement_sequence is the per-lot movement counter.  It is only
      advanced by MovementLedger while the lot row is locked.

Failure modes:
    - IntegrityError on a second active lot with the same number, or on a
      negative quantity.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from reagent_ledger.db.base import TrackedBase, UUIDString


class Lot(TrackedBase):
    """
    A batch of one reagent, identified by a caller-supplied lot number.

    Contract:
        Created by the first stock-in for an unseen (reagent, lot_number)
        pair.  Its expiry_date and date_of_reception are fixed by that
        first stock-in; later stock-ins only add quantity.

    Guarantees:
        - A lot that reaches quantity 0 stays active until deleted.
        - Deletion is soft (is_active = False) and is preceded by a
          write-off movement when stock remains.
    """

    __tablename__ = "lots"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_lot_quantity_non_negative"),
        CheckConstraint("movement_sequence >= 0", name="ck_lot_sequence_non_negative"),
        Index(
            "uq_lots_active_lot_number",
            "reagent_id",
            "lot_number",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_lot_reagent", "reagent_id"),
        Index("idx_lot_expiry", "expiry_date"),
    )

    reagent_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("reagents.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # Authoritative stock for this batch
    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    date_of_reception: Mapped[date | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Last movement sequence number issued for this lot
    movement_sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def shelf_life_days(self) -> int | None:
        """Days between reception and expiry, when both are known."""
        if self.expiry_date is None or self.date_of_reception is None:
            return None
        return (self.expiry_date - self.date_of_reception).days

    def __repr__(self) -> str:
        return f"<Lot {self.lot_number}: {self.quantity} (active={self.is_active})>"
