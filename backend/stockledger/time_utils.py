from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

"""
Ledger time conventions:
- Every stored timestamp is UTC-naive.
- A report day is a UTC calendar day; its cutoff is the last instant of it.
"""


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD". None / "" -> None; anything else raises ValueError."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def end_of_day(day: date) -> datetime:
    """Cutoff for a report day: movements strictly later than this happened "after" it."""
    return datetime.combine(day, time.max)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', whole seconds. Naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
