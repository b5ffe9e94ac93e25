"""
Timestamp utilities for consistent time handling across the service.

All timestamps are stored as ISO-8601 strings in UTC. Naive values coming
from clients or the model are interpreted as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Serialize a datetime to the storage format (ISO-8601, UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    # fixed precision keeps stored strings lexicographically ordered
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Returns None for None/empty input. Raises ValueError for malformed text.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        # fromisoformat accepts "Z" on 3.11+, but clients also send a lowercase z
        if text.endswith(("z", "Z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


def days_since(value: datetime, now: datetime | None = None) -> float:
    """Fractional days elapsed since value (negative if value is in the future)."""
    now = now or utcnow()
    return (now - value).total_seconds() / 86400.0
