"""
Module: reagent_ledger.models.reagent
Responsibility: ORM persistence for reagent catalog items and their derived
    aggregate stock quantity.
Architecture position: Ledger > Models.  May import from db/base.py only.

Invariants enforced:
    - total_quantity equals the sum of quantity over the reagent's active
      lots.  It is a derived column: only ReagentAggregate.recompute()
      writes it, always in the same transaction as the lot change.
    - reference is unique across the catalog (uq_reagent_reference).
    - Reagents are never hard-deleted (see db/immutability.py); deletion
      sets is_active = False.

Failure modes:
    - IntegrityError on duplicate reference or negative quantities
      (check constraints).
"""

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reagent_ledger.db.base import TrackedBase

# Units a reagent can be counted in.
REAGENT_UNITS: tuple[str, ...] = (
    "vials",
    "tests",
    "mL",
    "kits",
    "bottles",
    "boxes",
    "units",
    "strips",
)

DEFAULT_UNIT = "units"
DEFAULT_CATEGORY = "reagent"


class Reagent(TrackedBase):
    """
    A catalog item tracked in stock.

    Contract:
        Master data (name, reference, supplier, storage, sector, ...) is
        edited through ReagentService.  Stock fields (total_quantity,
        is_active) are owned by the stock ledger.

    Non-goals:
        - Does NOT store per-lot information; see Lot.
    """

    __tablename__ = "reagents"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_reagent_reference"),
        CheckConstraint("total_quantity >= 0", name="ck_reagent_total_non_negative"),
        CheckConstraint("minimum_stock >= 0", name="ck_reagent_minimum_non_negative"),
        Index("idx_reagent_name", "name"),
        Index("idx_reagent_sector", "sector"),
        Index("idx_reagent_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Supplier catalog reference, unique per item
    reference: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    supplier: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_CATEGORY,
    )

    unit: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DEFAULT_UNIT,
    )

    storage_location: Mapped[str] = mapped_column(String(255), nullable=False)

    storage_temperature: Mapped[str] = mapped_column(String(50), nullable=False)

    sector: Mapped[str] = mapped_column(String(100), nullable=False)

    machine: Mapped[str | None] = mapped_column(String(100), nullable=True)

    minimum_stock: Mapped[int] = mapped_column(nullable=False, default=0)

    # Derived: sum of active lot quantities
    total_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_low_stock(self) -> bool:
        """True when stock is at or below the reorder threshold."""
        return self.total_quantity <= self.minimum_stock

    def __repr__(self) -> str:
        return f"<Reagent {self.reference}: {self.name} ({self.total_quantity} {self.unit})>"
