"""Tests for calendar helpers"""

import pytest
from datetime import date, datetime

from scrapledger.tools.periods import (
    day_label,
    iter_days,
    month_label,
    month_range,
    percent_change,
    previous_month,
    safe_divide,
    week_chunks,
    week_label,
    week_range,
    week_start
)


@pytest.mark.parametrize("day,expected", [
    (date(2024, 3, 3), date(2024, 3, 3)),    # Sunday
    (date(2024, 3, 4), date(2024, 3, 3)),    # Monday
    (date(2024, 3, 9), date(2024, 3, 3)),    # Saturday
    (date(2024, 1, 1), date(2023, 12, 31)),  # crosses the year boundary
])
def test_week_start_is_sunday(day, expected):
    assert week_start(day) == expected


def test_week_range_accepts_datetime():
    assert week_range(datetime(2024, 3, 6, 14, 30)) == (date(2024, 3, 3), date(2024, 3, 9))


def test_month_range_handles_leap_february():
    assert month_range(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_range(2023, 2) == (date(2023, 2, 1), date(2023, 2, 28))


def test_previous_month_wraps_year():
    assert previous_month(2024, 1) == (2023, 12)
    assert previous_month(2024, 3) == (2024, 2)


def test_iter_days_inclusive():
    days = list(iter_days(date(2024, 2, 27), date(2024, 3, 1)))
    assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]


def test_week_chunks_for_31_day_month():
    chunks = week_chunks(*month_range(2024, 3))
    assert len(chunks) == 5
    assert chunks[0] == (date(2024, 3, 1), date(2024, 3, 7))
    assert chunks[-1] == (date(2024, 3, 29), date(2024, 3, 31))


def test_week_chunks_for_28_day_month():
    chunks = week_chunks(*month_range(2021, 2))
    assert len(chunks) == 4
    assert chunks[-1] == (date(2021, 2, 22), date(2021, 2, 28))


def test_labels():
    assert day_label(datetime(2024, 3, 1, 9)) == "2024-03-01"
    assert week_label(date(2024, 3, 6)) == "Week of 2024-03-03"
    assert month_label(date(2024, 3, 17)) == "March 2024"


def test_growth_from_zero_previous_is_plus_100():
    assert percent_change(500, 0) == 100.0


def test_growth_both_zero_is_zero():
    assert percent_change(0, 0) == 0.0


def test_growth_regular_cases():
    assert percent_change(150, 100) == pytest.approx(50.0)
    assert percent_change(50, 100) == pytest.approx(-50.0)


def test_safe_divide():
    assert safe_divide(10, 4) == 2.5
    assert safe_divide(10, 0) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
