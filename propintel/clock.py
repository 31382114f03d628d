"""
Timestamp helpers.

All persisted timestamps are naive UTC. Incoming aware datetimes (e.g. ISO
strings ending in ``Z``) are converted so comparisons never mix the two.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.utcnow()


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def resolve_now(now: Optional[datetime]) -> datetime:
    """The injected clock, or the current UTC time."""
    return as_naive_utc(now) if now is not None else utcnow()
