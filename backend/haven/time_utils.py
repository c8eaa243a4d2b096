from __future__ import annotations

import re
from datetime import datetime, time, timezone

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server clock in UTC, stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None, *, end_of_day: bool = False) -> datetime | None:
    """
    Parse an ISO-8601 string into a naive UTC datetime.

    A bare date is midnight of that day, or its last microsecond when
    ``end_of_day`` is set so that date ranges include the whole end date.
    Offsets ("Z", "+02:00") are converted to UTC; naive input is taken as UTC.
    Empty input gives None. Malformed input raises ValueError.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if _DATE_ONLY.match(s):
        day = datetime.fromisoformat(s).date()
        return datetime.combine(day, time.max if end_of_day else time.min)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: datetime | None) -> str | None:
    """Render as ISO-8601 with a trailing 'Z', to the second."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
