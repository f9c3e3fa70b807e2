from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """
    Business 'today', taken from the UTC clock.

    Overdue checks, default invoice / payment / entry dates and dashboard
    reminders all compare against this one date.
    """
    return utcnow().date()


def parse_iso_date(value) -> Optional[date]:
    """
    Parse a calendar date from a request field.

    - None / "" -> None
    - date / datetime objects pass through (datetime -> its date)
    - "YYYY-MM-DD"
    - full ISO datetimes, "Z" or offset included: the UTC calendar day

    Raises ValueError on anything else; callers turn it into a
    ValidationError naming their field.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value if value.tzinfo is None else value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Timestamp as ISO-8601 UTC with a trailing 'Z'; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None
