from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def date_stamp(value: Optional[datetime] = None) -> str:
    """YYYYMMDD stamp used as the order number prefix."""
    return (value or utcnow()).strftime("%Y%m%d")


def parse_filter_date(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a listing filter bound into a UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" covers the whole day (start, or end when end_of_day=True)
    - full ISO-8601 values ("...Z", offsets) are converted to UTC
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if len(s) == 10:
        day = date.fromisoformat(s)
        if end_of_day:
            return datetime(day.year, day.month, day.day, 23, 59, 59, 999999)
        return datetime(day.year, day.month, day.day)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
