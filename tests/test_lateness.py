"""Tests for lateness and overtime evaluation."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from timekeeper.core.enums import SettingSource
from timekeeper.services.lateness import check_late_arrival, overtime_hours
from timekeeper.services.work_settings import EffectiveWorkSettings

TOKYO = timezone(timedelta(hours=9))


def _schedule(start="10:00"):
    return EffectiveWorkSettings(
        work_start_time=start,
        work_end_time="19:00",
        break_minutes=60,
        overtime_threshold_hours=8.0,
        time_interval_minutes=15,
        transportation_cost=0.0,
        scheduled_hours=8.0,
        setting_source=SettingSource.PERSONAL,
    )


@pytest.mark.parametrize(
    "hh, mm, late, minutes",
    [
        (9, 59, False, 0),
        (10, 0, False, 0),
        (10, 1, True, 1),
        (11, 30, True, 90),
    ],
)
def test_late_against_ten_oclock_start(hh, mm, late, minutes):
    result = check_late_arrival(datetime(2024, 3, 11, hh, mm), _schedule("10:00"))
    assert result.is_late is late
    assert result.late_minutes == minutes
    assert result.expected_start_time == "10:00"
    assert result.actual_start_time == f"{hh:02d}:{mm:02d}"


def test_late_against_nine_oclock_start():
    assert check_late_arrival(datetime(2024, 3, 11, 8, 30), _schedule("09:00")).is_late is False
    late = check_late_arrival(datetime(2024, 3, 11, 9, 1), _schedule("09:00"))
    assert late.is_late is True
    assert late.late_minutes == 1


def test_aware_clock_in_uses_local_wall_clock():
    # 01:05 UTC is 10:05 in UTC+9
    clock_in = datetime(2024, 3, 11, 1, 5, tzinfo=timezone.utc)
    result = check_late_arrival(clock_in, _schedule("10:00"), TOKYO)
    assert result.is_late is True
    assert result.late_minutes == 5
    assert result.actual_start_time == "10:05"


def test_missing_start_time_is_not_applicable():
    result = check_late_arrival(datetime(2024, 3, 11, 12, 0), _schedule(None))
    assert result.is_late is False
    assert result.expected_start_time == "N/A"
    assert result.actual_start_time == "12:00"


def test_result_carries_setting_source():
    effective = replace(_schedule(), setting_source=SettingSource.PROJECT, project_name="Apollo")
    result = check_late_arrival(datetime(2024, 3, 11, 9, 0), effective)
    assert result.setting_source == "project"
    assert result.project_name == "Apollo"


def test_overtime_hours():
    assert overtime_hours(9.5, 8.0) == 1.5
    assert overtime_hours(7.0, 8.0) == 0.0
    assert overtime_hours(8.333, 8.0) == 0.33
