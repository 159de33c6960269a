"""Datetime helpers.

Provides UTC timestamp helpers without using deprecated ``datetime.utcnow()``.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time as a naive datetime.

    Timestamps are stored as naive UTC datetimes in the models.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC.

    Naive inputs are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
