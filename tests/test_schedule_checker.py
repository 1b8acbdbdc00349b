"""
Tests for the cron schedule checks.
"""

from datetime import datetime

import pytest

from blob_export.schedule_checker import ScheduleChecker


def test_daily_schedule_already_fired_today():
    assert ScheduleChecker.should_run_today("0 5 * * *", datetime(2024, 6, 15, 6, 0))


def test_daily_schedule_not_yet_fired_today():
    assert not ScheduleChecker.should_run_today("0 5 * * *", datetime(2024, 6, 15, 4, 0))


def test_weekly_schedule_on_other_day():
    # 2024-06-15 is a Saturday; schedule runs Mondays
    assert not ScheduleChecker.should_run_today("0 5 * * 1", datetime(2024, 6, 15, 12, 0))


def test_next_run_time():
    assert ScheduleChecker.next_run_time("0 5 * * *", datetime(2024, 6, 15, 6, 0)) == datetime(
        2024, 6, 16, 5, 0
    )


def test_invalid_schedule_raises_value_error():
    with pytest.raises(ValueError):
        ScheduleChecker.should_run_today("not a cron", datetime(2024, 6, 15))
