from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def shift_days(day: date, days: int) -> date:
    return day + timedelta(days=int(days))


def parse_iso_date(s: str | None) -> date | None:
    """Parse the leading YYYY-MM-DD of a date/datetime string.

    Form 4 dates occasionally carry a timezone suffix (2024-01-15-05:00) and feed
    timestamps are full datetimes, so only the first 10 characters are used.
    Returns None when the value is blank or not a calendar date.
    """
    if s is None:
        return None
    t = str(s).strip()
    if len(t) < 10:
        return None
    try:
        return date.fromisoformat(t[:10])
    except ValueError:
        return None
