from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def months_ago(months: int, *, base: Optional[date] = None) -> date:
    """
    Calendar-month arithmetic: 2026-08-31 minus 6 months is 2026-02-28.
    """
    return (base or today()) - relativedelta(months=months)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD string.

    - None / "" -> None
    - Anything else that is not an ISO date raises ValueError
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError("Date must be a YYYY-MM-DD string")
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """Stored timestamps are naive UTC; emit them as 2026-01-31T08:00:00Z."""
    if value is None:
        return None
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
