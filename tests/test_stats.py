"""Tests for monthly and company statistics."""

from datetime import date, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.exceptions import (NotFoundError, PermissionDeniedError,
                                        ValidationError)
from timekeeper.core.scope import AllScope, CompanyScope, UserScope
from timekeeper.repositories.directory import (SqlProjectDirectory,
                                               SqlUserDirectory)
from timekeeper.repositories.time_entries import SqlTimeEntryRepository
from timekeeper.repositories.work_settings import SqlWorkSettingsRepository
from timekeeper.services.corrections import CorrectionService
from timekeeper.services.stats import StatisticsAggregator
from timekeeper.services.work_settings import (SystemDefaults,
                                               WorkSettingsResolver,
                                               WorkSettingsService)

LOCAL = timezone(timedelta(hours=9))


def _weekdays(year: int, month: int):
    day = date(year, month, 1)
    while day.month == month:
        if day.weekday() < 5:
            yield day
        day += timedelta(days=1)


@pytest.fixture
def aggregator(db_session: AsyncSession) -> StatisticsAggregator:
    resolver = WorkSettingsResolver(
        SqlWorkSettingsRepository(db_session), SqlUserDirectory(db_session), SystemDefaults()
    )
    return StatisticsAggregator(
        SqlTimeEntryRepository(db_session), SqlUserDirectory(db_session), resolver, tz=LOCAL
    )


@pytest.fixture
def settings_service(db_session: AsyncSession) -> WorkSettingsService:
    return WorkSettingsService(
        SqlWorkSettingsRepository(db_session), SqlUserDirectory(db_session), SqlProjectDirectory(db_session)
    )


# ── Monthly ─────────────────────────────────────────────────────────
async def test_attendance_rate_over_working_days(aggregator, directory, make_entry):
    # June 2024 has 20 weekdays
    days = list(_weekdays(2024, 6))
    assert len(days) == 20
    for day in days[:15]:
        await make_entry(directory.alice, day)

    stats = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 6)
    assert stats.working_days == 20
    assert stats.total_days == 30
    assert stats.work_days == 15
    assert stats.attendance_rate == 75.0
    assert stats.total_work_hours == 120.0
    assert stats.average_work_hours == 8.0
    assert stats.pending_count == 15


async def test_lateness_overtime_and_averages(aggregator, directory, make_entry):
    await make_entry(directory.alice, date(2024, 6, 3), "09:00", "18:00")
    await make_entry(directory.alice, date(2024, 6, 4), "10:01", "21:01", status="APPROVED")

    stats = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 6)
    assert stats.late_count == 1
    assert stats.overtime_hours == 2.0
    assert stats.average_clock_in == "09:31"
    assert stats.average_clock_out == "19:31"
    assert stats.approved_count == 1

    on_time, late = stats.entries
    assert on_time.is_late is False
    assert late.lateness.late_minutes == 61
    assert late.effective.setting_source.value == "default"


async def test_transportation_prefers_entry_value(aggregator, settings_service, directory, make_entry):
    await settings_service.update_personal(directory.alice.id, {"transportation_cost": 5.0})
    await make_entry(directory.alice, date(2024, 6, 3))
    await make_entry(directory.alice, date(2024, 6, 4), transportation_cost=20.0)
    await make_entry(directory.alice, date(2024, 6, 5), None, None, break_minutes=0)

    stats = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 6)
    assert stats.transportation_cost == 25.0
    assert stats.work_days == 2


async def test_active_project_schedule_decides_lateness(aggregator, settings_service, directory, make_entry):
    await settings_service.update_personal(directory.alice.id, {"work_start_time": "09:00", "work_end_time": "18:00"})
    shift = await settings_service.create_project_settings(
        AllScope(), directory.apollo.id, {"name": "Late shift", "work_start_time": "10:00", "work_end_time": "19:00"}
    )
    await settings_service.assign(AllScope(), shift.id, user_id=directory.alice.id, start_date=date(2024, 6, 1))
    await make_entry(directory.alice, date(2024, 5, 31), "09:45", "18:45")
    await make_entry(directory.alice, date(2024, 6, 3), "09:45", "18:45")

    june = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 6)
    (covered,) = june.entries
    assert covered.effective.setting_source.value == "project"
    assert covered.effective.work_start_time == "10:00"
    assert covered.is_late is False
    assert june.late_count == 0

    may = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 5)
    (before,) = may.entries
    assert before.effective.setting_source.value == "personal"
    assert before.effective.work_start_time == "09:00"
    assert before.is_late is True
    assert before.lateness.late_minutes == 45


async def test_leave_days_count_entries_with_a_leave_type(aggregator, directory, make_entry, db_session):
    corrections = CorrectionService(SqlTimeEntryRepository(db_session), SqlUserDirectory(db_session))
    await make_entry(directory.alice, date(2024, 6, 3))
    day_off = await make_entry(directory.alice, date(2024, 6, 4), None, None, break_minutes=0)
    await corrections.correct_entry(AllScope(), directory.admin.id, day_off.id, {"leave_type": "paid_leave"})

    stats = await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 6)
    assert stats.leave_days == 1
    assert stats.work_days == 1
    assert stats.entries[1].entry.leave_type == "PAID_LEAVE"


async def test_empty_month(aggregator, directory):
    stats = await aggregator.monthly_stats(AllScope(), directory.bob.id, 2024, 6)
    assert stats.work_days == 0
    assert stats.attendance_rate == 0.0
    assert stats.average_clock_in == "--:--"
    assert stats.average_clock_out == "--:--"
    assert stats.entries == ()


async def test_monthly_stats_access(aggregator, directory):
    with pytest.raises(PermissionDeniedError):
        await aggregator.monthly_stats(UserScope(directory.bob.id), directory.alice.id, 2024, 6)
    with pytest.raises(PermissionDeniedError):
        await aggregator.monthly_stats(CompanyScope(2), directory.alice.id, 2024, 6)
    with pytest.raises(NotFoundError):
        await aggregator.monthly_stats(AllScope(), 4242, 2024, 6)
    with pytest.raises(ValidationError):
        await aggregator.monthly_stats(AllScope(), directory.alice.id, 2024, 13)

    own = await aggregator.monthly_stats(UserScope(directory.alice.id), directory.alice.id, 2024, 6)
    assert own.user_id == directory.alice.id


# ── Company ─────────────────────────────────────────────────────────
async def test_company_stats_ranking_counts_approved_hours(aggregator, directory, make_entry):
    await make_entry(directory.alice, date(2024, 6, 3), status="APPROVED")
    await make_entry(directory.alice, date(2024, 6, 4), status="APPROVED")
    await make_entry(directory.bob, date(2024, 6, 3), "09:00", "20:00", status="APPROVED")
    await make_entry(directory.manager, date(2024, 6, 3), "08:00", "23:00")
    await make_entry(directory.carol, date(2024, 6, 3), status="APPROVED")

    stats = await aggregator.company_stats(CompanyScope(1), 1, 2024, 6)
    assert stats.user_count == 4
    assert stats.total_entries == 4
    assert stats.working_days == 20

    breakdown = {row.status: row for row in stats.status_breakdown}
    assert [row.status for row in stats.status_breakdown] == ["PENDING", "APPROVED", "REJECTED"]
    assert breakdown["APPROVED"].count == 3
    assert breakdown["PENDING"].count == 1
    assert breakdown["REJECTED"].average_work_hours == 0.0

    assert [(row.rank, row.name, row.approved_hours) for row in stats.ranking] == [
        (1, "Alice Anders", 16.0),
        (2, "Bob Berg", 10.0),
    ]

    top = await aggregator.company_stats(CompanyScope(1), 1, 2024, 6, top_n=1)
    assert len(top.ranking) == 1


async def test_company_stats_requires_the_company(aggregator, directory):
    with pytest.raises(PermissionDeniedError):
        await aggregator.company_stats(CompanyScope(2), 1, 2024, 6)
    with pytest.raises(PermissionDeniedError):
        await aggregator.company_stats(UserScope(directory.alice.id), 1, 2024, 6)
    stats = await aggregator.company_stats(AllScope(), 2, 2024, 6)
    assert stats.user_count == 1
