# backend/quotehub/utils/date_utils.py
"""
Date helpers shared by the data provider layer.

All market data dates are calendar days keyed as "YYYY-MM-DD" strings in
provider responses and as `date` objects in the database.

Usage:
    from quotehub.utils.date_utils import each_day_of_interval, format_date

    keys = [format_date(d) for d in each_day_of_interval(start, end)]
"""

from datetime import date, datetime, timedelta, timezone

from quotehub.services.constants import DATE_FORMAT


def each_day_of_interval(start_date: date, end_date: date) -> list[date]:
    """
    Every calendar day from start_date to end_date, both inclusive.

    Returns an empty list when start_date is after end_date.

    Example:
        >>> each_day_of_interval(date(2024, 1, 30), date(2024, 2, 1))
        [date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1)]
    """
    days = []
    current = start_date

    while current <= end_date:
        days.append(current)
        current += timedelta(days=1)

    return days


def format_date(d: date | datetime) -> str:
    return d.strftime(DATE_FORMAT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_start_of_utc_date(moment: datetime | None = None) -> date:
    """The UTC calendar day of `moment` (default: now)."""
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


def get_yesterday() -> date:
    return get_start_of_utc_date() - timedelta(days=1)


def is_same_utc_day(first: datetime | None, second: datetime) -> bool:
    """True if both moments fall on the same UTC day. None never matches."""
    if first is None:
        return False
    return get_start_of_utc_date(first) == get_start_of_utc_date(second)
