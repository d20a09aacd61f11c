"""
Date helpers shared by analytics, expenses and calendar sync.
"""
import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

DateLike = Union[str, date, datetime]


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (or an ISO timestamp) into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def iso(value: DateLike) -> str:
    return parse_date(value).isoformat()


def today_iso() -> str:
    return date.today().isoformat()


def days_between(start: DateLike, end: DateLike) -> int:
    """Calendar days from ``start`` to ``end`` (negative when reversed)."""
    return (parse_date(end) - parse_date(start)).days


def period_days(start: DateLike, end: DateLike) -> int:
    """Inclusive length of a reporting period, at least one day."""
    return max(1, days_between(start, end) + 1)


def add_days(value: DateLike, days: int) -> date:
    return parse_date(value) + timedelta(days=days)


def add_months(value: DateLike, months: int) -> date:
    d = parse_date(value)
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(value: DateLike, years: int) -> date:
    return add_months(value, 12 * years)


def month_bounds(value: DateLike) -> Tuple[date, date]:
    """First and last day of the month containing ``value``."""
    d = parse_date(value)
    return d.replace(day=1), d.replace(day=calendar.monthrange(d.year, d.month)[1])


def month_start_from_key(month: str) -> date:
    """``YYYY-MM`` to the first day of that month."""
    return date.fromisoformat(f"{month}-01")
