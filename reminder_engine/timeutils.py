"""Timezone normalization helpers.

All reminder timestamps are stored and compared in UTC. Some backends (SQLite)
hand back naive datetimes; those are assumed to already be UTC.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """Normalize any datetime to UTC-aware. Naive values are assumed UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
