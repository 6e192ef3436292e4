"""
Calendar-month arithmetic used by depreciation periods and schedule cadence.

All functions are pure and operate on ``datetime.date``.
"""

import calendar
from datetime import date


def last_day_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def first_day_of_month(day: date) -> date:
    return day.replace(day=1)


def is_end_of_month(day: date) -> bool:
    """True when ``day`` is the last calendar day of its month."""
    return day == last_day_of_month(day)


def add_months(day: date, months: int) -> date:
    """
    Shift ``day`` by ``months`` calendar months, clamping the day-of-month
    to the length of the target month (Jan 31 + 1 month -> Feb 28/29).
    """
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def months_between(earlier: date, later: date) -> int:
    """
    Calendar-month index difference, ignoring day-of-month.

    Jan 31 -> Feb 1 is 1; Jan 1 -> Jan 31 is 0.
    """
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping ``day`` to the last valid day of the month."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))
