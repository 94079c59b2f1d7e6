"""Time helpers.

Loan dates are stored as naive UTC datetimes so they compare the same way on
SQLite and on server databases.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def starts_before_today(value: datetime) -> bool:
    """True if ``value`` falls on an earlier calendar day than today.

    Aware values are judged in their own timezone, so a borrower at UTC+7
    asking for 00:30 local time today is not pushed back to yesterday.
    Naive values are UTC.
    """
    if value.tzinfo is None:
        return value.date() < utcnow().date()
    return value.date() < datetime.now(value.tzinfo).date()
