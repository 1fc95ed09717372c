"""Date and time parsing utilities."""

from datetime import date, datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Supports various formats including relative dates:
    - Absolute dates: "2025-02-03", "02/03/2025", "Feb 3, 2025", etc.
    - Relative dates: "today", "yesterday", "tomorrow", "this month",
      "last month", "next month", "this week", "last week"

    Args:
        date_str: Date string in various formats

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    date_str = date_str.strip().lower()
    today = date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
        "this month": today.replace(day=1),
        "last month": (today - relativedelta(months=1)).replace(day=1),
        "next month": (today + relativedelta(months=1)).replace(day=1),
        "this week": today - timedelta(days=today.weekday()),
        "last week": today - timedelta(days=today.weekday() + 7),
    }
    if date_str in relative_dates:
        return relative_dates[date_str]

    try:
        return date_parser.parse(date_str).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def parse_visit_date(value) -> Optional[date]:
    """Parse a visit date as written on a timesheet, or None if unreadable.

    OCR output mixes ISO dates and US month/day/year; month-first is assumed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date_parser.parse(text, dayfirst=False).date()
    except (ValueError, OverflowError):
        return None


def parse_clock_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a wall-clock time such as ``9:00 AM`` or ``14:30``.

    Returns:
        datetime on an arbitrary fixed day, or None if unreadable
    """
    if not value or not str(value).strip():
        return None
    try:
        return date_parser.parse(str(value).strip(), default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        return None


def minutes_between(time_in: Optional[str], time_out: Optional[str]) -> int:
    """Minutes from time in to time out.

    A time out earlier than time in is taken to cross midnight. Unreadable
    times give 0.
    """
    start = parse_clock_time(time_in)
    end = parse_clock_time(time_out)
    if start is None or end is None:
        return 0
    if end < start:
        end += timedelta(days=1)
    return int((end - start).total_seconds() // 60)


def get_date_range(period: str) -> tuple[date, date]:
    """Start and end dates of a named reporting range.

    Args:
        period: One of this-month, last-month, this-year, last-year

    Returns:
        (start_date, end_date); ranges that include today end today

    Raises:
        ValueError: If the range name is not recognized
    """
    period = period.strip().lower()
    today = date.today()
    first_of_month = today.replace(day=1)
    first_of_year = today.replace(month=1, day=1)

    if period == "this-month":
        return first_of_month, today
    if period == "last-month":
        return first_of_month - relativedelta(months=1), first_of_month - timedelta(days=1)
    if period == "this-year":
        return first_of_year, today
    if period == "last-year":
        return first_of_year - relativedelta(years=1), first_of_year - timedelta(days=1)
    raise ValueError(f"Unknown period '{period}'. Use this-month, last-month, this-year or last-year")
