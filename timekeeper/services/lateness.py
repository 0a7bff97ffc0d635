"""
Lateness & overtime evaluation.

Punches are compared as integer minutes-of-day on the local wall clock.
Arriving exactly at the scheduled start is on time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Optional

from timekeeper.core.config import settings
from timekeeper.core.timeutils import (format_minutes, minute_of_day,
                                       parse_hhmm, parse_offset, to_local)
from timekeeper.services.work_settings import EffectiveWorkSettings

NOT_APPLICABLE = "N/A"


@dataclass(frozen=True)
class LateArrival:
    is_late: bool
    late_minutes: int
    expected_start_time: str
    actual_start_time: str
    setting_source: Optional[str] = None
    project_name: Optional[str] = None


def local_zone() -> tzinfo:
    return parse_offset(settings.TIMEZONE_OFFSET)


def check_late_arrival(
    clock_in: datetime,
    effective: EffectiveWorkSettings,
    tz: Optional[tzinfo] = None,
) -> LateArrival:
    """Classify one clock-in against the schedule resolved for its day.

    Aware timestamps are converted to ``tz`` (the configured offset by
    default) before taking the time of day; naive ones are read as local.
    """
    if clock_in.tzinfo is not None:
        clock_in = to_local(clock_in, tz or local_zone())
    actual = minute_of_day(clock_in)
    source = effective.setting_source.value if effective.setting_source is not None else None

    if not effective.work_start_time:
        return LateArrival(
            is_late=False,
            late_minutes=0,
            expected_start_time=NOT_APPLICABLE,
            actual_start_time=format_minutes(actual),
            setting_source=source,
            project_name=effective.project_name,
        )

    expected = parse_hhmm(effective.work_start_time)
    late_by = actual - expected
    return LateArrival(
        is_late=late_by > 0,
        late_minutes=max(0, late_by),
        expected_start_time=format_minutes(expected),
        actual_start_time=format_minutes(actual),
        setting_source=source,
        project_name=effective.project_name,
    )


def overtime_hours(worked_hours: float, threshold_hours: float) -> float:
    return round(max(0.0, (worked_hours or 0.0) - (threshold_hours or 0.0)), 2)
