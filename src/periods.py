"""
periods.py - report periods and calendar-month buckets

A report period is an inclusive DateRange. The presets mirror the dashboard's
period selector; months_in_range() splits any range into whole calendar months
(partial months at either end are kept whole, never clipped).
"""

from typing import List, Optional, Tuple
import datetime

from dateutil.relativedelta import relativedelta

from src.models import DateRange

MONTH = "month"
QUARTER = "quarter"
YEAR = "year"
CUSTOM = "custom"

# preset key -> label shown in the period selector
PERIOD_PRESETS: List[Tuple[str, str]] = [
    (MONTH, "This Month"),
    (QUARTER, "Last 3 Months"),
    (YEAR, "This Year"),
    (CUSTOM, "Custom Range"),
]


def _as_datetime(value) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime(value.year, value.month, value.day)


def start_of_day(value) -> datetime.datetime:
    return _as_datetime(value).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value) -> datetime.datetime:
    return _as_datetime(value).replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_month(value) -> datetime.datetime:
    return start_of_day(value).replace(day=1)


def end_of_month(value) -> datetime.datetime:
    """Last instant of the month containing `value`."""
    first_of_next = start_of_month(value) + relativedelta(months=1)
    return first_of_next - datetime.timedelta(microseconds=1)


def start_of_year(value) -> datetime.datetime:
    return start_of_month(value).replace(month=1)


def end_of_year(value) -> datetime.datetime:
    return end_of_month(start_of_year(value).replace(month=12))


def month_window(month_start) -> DateRange:
    """[first instant, last instant] of the month containing `month_start`."""
    return DateRange(start=start_of_month(month_start), end=end_of_month(month_start))


def months_in_range(date_range: DateRange) -> List[datetime.datetime]:
    """
    First-of-month for every calendar month the range touches, oldest first.
    An inverted range has no months.
    """
    if date_range.is_empty:
        return []
    months = []
    cursor = start_of_month(date_range.start)
    while cursor <= date_range.end:
        months.append(cursor)
        cursor = cursor + relativedelta(months=1)
    return months


def period_range(preset: str,
                 now: Optional[datetime.datetime] = None,
                 start=None,
                 end=None) -> DateRange:
    """
    Build the DateRange for a period preset.

      - month:   current calendar month
      - quarter: two months back through the end of the current month
      - year:    current calendar year
      - custom:  caller-supplied start/end, widened to whole days

    A custom range with start > end is returned as-is; it matches no records.
    """
    if now is None:
        now = datetime.datetime.now()
    if preset == MONTH:
        return DateRange(start=start_of_month(now), end=end_of_month(now))
    if preset == QUARTER:
        return DateRange(start=start_of_month(now - relativedelta(months=2)), end=end_of_month(now))
    if preset == YEAR:
        return DateRange(start=start_of_year(now), end=end_of_year(now))
    if preset == CUSTOM:
        if start is None or end is None:
            raise ValueError("custom period needs both start and end")
        return DateRange(start=start_of_day(start), end=end_of_day(end))
    raise ValueError(f"Unknown period preset: {preset!r}")
