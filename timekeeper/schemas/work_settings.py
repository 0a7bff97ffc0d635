"""Pydantic schemas for personal / project work settings."""

from __future__ import annotations

import datetime as dt
import re

from pydantic import BaseModel, Field, field_validator

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _hhmm(v: str | None) -> str | None:
    """Normalise "9:00" to "09:00"; None passes through."""
    if v is None:
        return None
    v = v.strip()
    match = _HHMM_RE.match(v)
    if not match:
        raise ValueError("Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class _ScheduleFields(BaseModel):
    work_start_time: str | None = None
    work_end_time: str | None = None
    break_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    overtime_threshold_hours: float | None = Field(default=None, ge=0, le=24)
    transportation_cost: float | None = Field(default=None, ge=0)

    @field_validator("work_start_time", "work_end_time")
    @classmethod
    def _times(cls, v: str | None) -> str | None:
        return _hhmm(v)


class PersonalSettingsUpdate(_ScheduleFields):
    time_interval_minutes: int | None = Field(default=None, ge=1, le=60)


class PersonalSettingsRead(BaseModel):
    user_id: int
    work_start_time: str | None = None
    work_end_time: str | None = None
    break_minutes: int | None = None
    overtime_threshold_hours: float | None = None
    time_interval_minutes: int | None = None
    transportation_cost: float | None = None

    model_config = {"from_attributes": True}


class ProjectSettingsCreate(_ScheduleFields):
    name: str = "Default"

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v


class ProjectSettingsRead(BaseModel):
    id: int
    project_id: int
    name: str
    work_start_time: str | None = None
    work_end_time: str | None = None
    break_minutes: int | None = None
    overtime_threshold_hours: float | None = None
    transportation_cost: float | None = None

    model_config = {"from_attributes": True}


class AssignmentCreate(BaseModel):
    user_id: int
    start_date: dt.date
    end_date: dt.date | None = None


class AssignmentRead(BaseModel):
    id: int
    project_work_settings_id: int
    user_id: int
    start_date: dt.date
    end_date: dt.date | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class EffectiveSettingsRead(BaseModel):
    date: dt.date
    work_start_time: str | None = None
    work_end_time: str | None = None
    break_minutes: int
    overtime_threshold_hours: float
    time_interval_minutes: int
    transportation_cost: float
    scheduled_hours: float
    setting_source: str
    project_name: str | None = None
    project_setting_name: str | None = None
    conflicting_setting_ids: list[int] = []
