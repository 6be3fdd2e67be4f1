"""
dates.py - UTC date helpers shared by entries, statistics and insights

All day boundaries are computed in UTC so the server and every client agree
on which calendar day an entry belongs to.

ISO week convention: weeks start on Monday and week 1 is the week holding
the year's first Thursday. `week_index` encodes a week as
`iso_year * 100 + iso_week` (e.g. 2025-12-29 -> 202601).
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

import pytz

DateLike = Union[date, datetime, str]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(pytz.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def to_date(value: DateLike) -> date:
    """UTC calendar date of a datetime, date or ISO string."""
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    parsed = parse_day_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed.date()


def to_iso_date(value: DateLike) -> str:
    """YYYY-MM-DD string for the UTC day of `value`."""
    return to_date(value).isoformat()


def day_start(d: date) -> datetime:
    """Midnight UTC of a calendar day, as stored for `day_date`."""
    return pytz.utc.localize(datetime.combine(d, time.min))


def parse_day_date(value) -> Optional[datetime]:
    """
    Parse a user/model supplied day into midnight UTC of that day.

    Accepts date/datetime objects, `YYYY-MM-DD` strings and ISO datetimes
    (with or without offset). Anything unparseable returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return day_start(ensure_utc(value).date())
    if isinstance(value, date):
        return day_start(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return day_start(ensure_utc(parsed).date())


def start_of_iso_week(value: DateLike) -> date:
    """Monday of the ISO week containing `value`."""
    d = to_date(value)
    return d - timedelta(days=d.weekday())


def week_bounds(value: DateLike) -> Tuple[date, date]:
    """(Monday, Sunday) of the ISO week containing `value`."""
    start = start_of_iso_week(value)
    return start, start + timedelta(days=6)


def week_index(value: DateLike) -> int:
    """ISO week encoding `iso_year * 100 + iso_week`."""
    iso_year, iso_week, _ = to_date(value).isocalendar()
    return iso_year * 100 + iso_week


def last_n_months(as_of: DateLike, n: int) -> List[str]:
    """`YYYY-MM` keys for the last `n` months, current month first."""
    d = to_date(as_of)
    year, month = d.year, d.month
    months = []
    for _ in range(n):
        months.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return months
