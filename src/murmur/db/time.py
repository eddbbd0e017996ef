"""Clock helpers.

All persisted timestamps are timezone-aware UTC. SQLite drops the offset on
the way back, so comparisons go through :func:`as_utc`.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalise ``value`` to an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
