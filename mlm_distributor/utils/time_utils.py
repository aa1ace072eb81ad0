"""
Time and date helpers.

All timestamps are timezone-aware UTC. Database columns store them as
``YYYY-MM-DDTHH:MM:SSZ`` text, which sorts lexicographically in time order
(the cycle lock relies on that for expiry comparisons).
"""

from __future__ import annotations

from datetime import date, datetime, timezone

DB_TS_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def format_ts(value: datetime) -> str:
    """Render a datetime in the database text format (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_TS_FORMAT)


def parse_ts(value: str) -> datetime:
    """Parse a database timestamp back into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def date_stamp(value: datetime | date) -> str:
    """``YYYY-MM-DD`` as used in transaction memos."""
    return value.strftime("%Y-%m-%d")
