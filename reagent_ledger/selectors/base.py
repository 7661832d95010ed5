"""
Module: reagent_ledger.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the CQRS-lite pattern: movement history, inventory
    listings, alert queries, analytics and integrity checks.
Architecture position: Ledger > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit, and
      never take row locks.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Session ownership: the caller owns the session and its transaction
      scope, so several queries in one transaction see one snapshot.
"""

from abc import ABC
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from reagent_ledger.db.base import Base
from reagent_ledger.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)

# Analytics date ranges, in days.
DATE_RANGES: dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "6m": 182,
}
DEFAULT_DATE_RANGE = "30d"


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def range_start(self, date_range: str | None) -> datetime:
        """Start of an analytics range ending now.  Unknown ranges mean 30d."""
        days = DATE_RANGES.get(date_range or DEFAULT_DATE_RANGE)
        if days is None:
            days = DATE_RANGES[DEFAULT_DATE_RANGE]
        return self.clock.now() - timedelta(days=days)
