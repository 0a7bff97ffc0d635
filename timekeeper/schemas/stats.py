"""Pydantic schemas for monthly and company statistics."""

from __future__ import annotations

from pydantic import BaseModel

from timekeeper.schemas.attendance import TimeEntryRead
from timekeeper.services.stats import AnnotatedEntry, CompanyStats, MonthlyStats


class AnnotatedEntryRead(TimeEntryRead):
    is_late: bool = False
    late_minutes: int = 0
    expected_start_time: str | None = None
    actual_start_time: str | None = None
    overtime_hours: float = 0.0
    effective_transportation_cost: float = 0.0
    setting_source: str
    setting_project_name: str | None = None
    scheduled_hours: float = 0.0

    @classmethod
    def from_annotated(cls, item: AnnotatedEntry) -> "AnnotatedEntryRead":
        base = TimeEntryRead.model_validate(item.entry).model_dump()
        late = item.lateness
        return cls(
            **base,
            is_late=item.is_late,
            late_minutes=late.late_minutes if late else 0,
            expected_start_time=late.expected_start_time if late else None,
            actual_start_time=late.actual_start_time if late else None,
            overtime_hours=item.overtime_hours,
            effective_transportation_cost=item.transportation_cost,
            setting_source=item.effective.setting_source.value,
            setting_project_name=item.effective.project_name,
            scheduled_hours=item.effective.scheduled_hours,
        )


class MonthlyStatsResponse(BaseModel):
    user_id: int
    year: int
    month: int
    total_days: int
    working_days: int
    work_days: int
    total_work_hours: float
    average_work_hours: float
    overtime_hours: float
    late_count: int
    leave_days: int
    pending_count: int
    approved_count: int
    rejected_count: int
    attendance_rate: float
    transportation_cost: float
    average_clock_in: str
    average_clock_out: str
    entries: list[AnnotatedEntryRead] = []

    @classmethod
    def from_stats(cls, stats: MonthlyStats) -> "MonthlyStatsResponse":
        return cls(
            user_id=stats.user_id,
            year=stats.year,
            month=stats.month,
            total_days=stats.total_days,
            working_days=stats.working_days,
            work_days=stats.work_days,
            total_work_hours=stats.total_work_hours,
            average_work_hours=stats.average_work_hours,
            overtime_hours=stats.overtime_hours,
            late_count=stats.late_count,
            leave_days=stats.leave_days,
            pending_count=stats.pending_count,
            approved_count=stats.approved_count,
            rejected_count=stats.rejected_count,
            attendance_rate=stats.attendance_rate,
            transportation_cost=stats.transportation_cost,
            average_clock_in=stats.average_clock_in,
            average_clock_out=stats.average_clock_out,
            entries=[AnnotatedEntryRead.from_annotated(a) for a in stats.entries],
        )


class StatusBreakdownRead(BaseModel):
    status: str
    count: int
    average_work_hours: float

    model_config = {"from_attributes": True}


class UserSummaryRead(BaseModel):
    user_id: int
    name: str
    work_days: int
    total_work_hours: float
    approved_hours: float
    overtime_hours: float
    late_count: int
    pending_count: int
    approved_count: int
    rejected_count: int

    model_config = {"from_attributes": True}


class RankingRowRead(BaseModel):
    rank: int
    user_id: int
    name: str
    approved_hours: float
    approved_entries: int

    model_config = {"from_attributes": True}


class CompanyStatsResponse(BaseModel):
    company_id: int
    year: int
    month: int
    user_count: int
    total_entries: int
    total_work_hours: float
    working_days: int
    status_breakdown: list[StatusBreakdownRead]
    users: list[UserSummaryRead]
    ranking: list[RankingRowRead]

    model_config = {"from_attributes": True}

    @classmethod
    def from_stats(cls, stats: CompanyStats) -> "CompanyStatsResponse":
        return cls.model_validate(stats)
