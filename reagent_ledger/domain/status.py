"""
Stock and expiry status rules.

Pure functions shared by selectors (list views, alert digest, export) so
that "low stock" and "expiring soon" mean the same thing everywhere.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum

CRITICAL_EXPIRY_DAYS = 7
WARNING_EXPIRY_DAYS = 30


class ExpiryStatus(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"
    UNKNOWN = "unknown"


class StockStatus(str, Enum):
    OUT = "out"
    LOW = "low"
    OK = "ok"


@dataclass(frozen=True)
class ExpiryAssessment:
    status: ExpiryStatus
    days_until: int | None


def expiry_status(
    expiry_date: date | None,
    today: date,
    critical_days: int = CRITICAL_EXPIRY_DAYS,
    warning_days: int = WARNING_EXPIRY_DAYS,
) -> ExpiryAssessment:
    """
    Classify a lot by how soon it expires.

    A lot expiring today is CRITICAL, not EXPIRED: it can still be used
    until the end of the day.
    """
    if expiry_date is None:
        return ExpiryAssessment(ExpiryStatus.UNKNOWN, None)

    days_until = (expiry_date - today).days
    if days_until < 0:
        status = ExpiryStatus.EXPIRED
    elif days_until <= critical_days:
        status = ExpiryStatus.CRITICAL
    elif days_until <= warning_days:
        status = ExpiryStatus.WARNING
    else:
        status = ExpiryStatus.OK
    return ExpiryAssessment(status, days_until)


def stock_status(quantity: int, minimum_stock: int) -> StockStatus:
    """OUT at zero, LOW at or below the minimum, OK above it."""
    if quantity <= 0:
        return StockStatus.OUT
    if quantity <= minimum_stock:
        return StockStatus.LOW
    return StockStatus.OK
