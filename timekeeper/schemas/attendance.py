"""Pydantic schemas for punches, breaks, work reports and ops endpoints."""

from __future__ import annotations

import datetime as dt
import math

from pydantic import BaseModel, Field, field_validator


def _clean_text(v: str | None, limit: int, label: str) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if len(v) > limit:
        raise ValueError(f"{label} must not exceed {limit} characters")
    return v


# ── Punches ─────────────────────────────────────────────────────────
class ClockInRequest(BaseModel):
    date: dt.date | None = None
    location: str | None = None
    note: str | None = None

    @field_validator("location")
    @classmethod
    def _location(cls, v: str | None) -> str | None:
        return _clean_text(v, 200, "Location")

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        return _clean_text(v, 1000, "Note")


class ClockOutRequest(BaseModel):
    location: str | None = None
    note: str | None = None

    @field_validator("location")
    @classmethod
    def _location(cls, v: str | None) -> str | None:
        return _clean_text(v, 200, "Location")

    @field_validator("note")
    @classmethod
    def _note(cls, v: str | None) -> str | None:
        return _clean_text(v, 1000, "Note")


# ── Breaks ──────────────────────────────────────────────────────────
class BreakStartRequest(BaseModel):
    reason: str | None = None

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str | None) -> str | None:
        return _clean_text(v, 200, "Reason")


class BreakRead(BaseModel):
    id: int
    time_entry_id: int
    start_time: dt.datetime
    end_time: dt.datetime | None = None
    duration_minutes: int | None = None
    reason: str

    model_config = {"from_attributes": True}


# ── Work reports ────────────────────────────────────────────────────
class WorkReportCreate(BaseModel):
    project_id: int
    description: str = ""
    hours: float | None = Field(default=None, ge=0, le=24)

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        return _clean_text(v, 2000, "Description") or ""


class WorkReportRead(BaseModel):
    id: int
    project_id: int
    project_name: str | None = None
    description: str
    hours: float | None = None

    model_config = {"from_attributes": True}


# ── Time entries ────────────────────────────────────────────────────
class TimeEntryRead(BaseModel):
    id: int
    user_id: int
    user_name: str
    date: dt.date
    clock_in: dt.datetime | None = None
    clock_out: dt.datetime | None = None
    clock_in_location: str | None = None
    clock_out_location: str | None = None
    break_minutes: int = 0
    worked_hours: float = 0.0
    status: str
    note: str | None = None
    leave_type: str | None = None
    transportation_cost: float | None = None
    approved_by: int | None = None
    approved_at: dt.datetime | None = None
    rejected_by: int | None = None
    rejected_at: dt.datetime | None = None
    rejection_reason: str | None = None
    breaks: list[BreakRead] = []
    work_reports: list[WorkReportRead] = []

    model_config = {"from_attributes": True}


class TimeEntryPage(BaseModel):
    items: list[TimeEntryRead]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, rows, total: int, page: int, limit: int) -> "TimeEntryPage":
        return cls(
            items=[TimeEntryRead.model_validate(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


# ── Health / Status ─────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool
    redis: bool


class StatusResponse(BaseModel):
    active_users: int
    today_entries: int
    pending_entries: int
    status: str
