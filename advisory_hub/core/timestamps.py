"""Request timestamp normalization.

Stored timestamps are naive local time, the same as ``datetime.now()``.
"""

from datetime import datetime


def to_local_naive(value: datetime | None) -> datetime | None:
    """Convert an offset-aware value to naive local time; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
