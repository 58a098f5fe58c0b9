"""Calendar helpers: week/month windows, bucket labels and growth"""

import calendar
from datetime import date, datetime, timedelta
from typing import Iterator, List, Tuple


def as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def week_start(day: date) -> date:
    """Sunday on or before the given day"""
    day = as_date(day)
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_range(day: date) -> Tuple[date, date]:
    """Sunday..Saturday containing the given day"""
    start = week_start(day)
    return start, start + timedelta(days=6)


def month_range(year: int, month: int) -> Tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def week_chunks(start: date, end: date) -> List[Tuple[date, date]]:
    """Consecutive 7-day chunks from start; the last chunk is truncated at end"""
    chunks = []
    chunk_start = start
    while chunk_start <= end:
        chunk_end = min(chunk_start + timedelta(days=6), end)
        chunks.append((chunk_start, chunk_end))
        chunk_start = chunk_end + timedelta(days=1)
    return chunks


def day_label(day: date) -> str:
    return as_date(day).isoformat()


def week_label(day: date) -> str:
    return f"Week of {week_start(day).isoformat()}"


def month_label(day: date) -> str:
    day = as_date(day)
    return f"{calendar.month_name[day.month]} {day.year}"


def percent_change(current: float, previous: float) -> float:
    """
    Period-over-period growth in percent

    +100 when the previous period is zero and the current one is not,
    0 when both are zero.
    """
    if previous == 0:
        return 100.0 if current != 0 else 0.0
    return (current - previous) / previous * 100


def safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0
