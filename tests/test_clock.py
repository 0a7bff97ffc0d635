"""Tests for the time-entry state machine (ClockService)."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.exceptions import (InvalidStateError, NotFoundError,
                                        PermissionDeniedError, ValidationError)
from timekeeper.repositories.directory import (SqlProjectDirectory,
                                               SqlUserDirectory)
from timekeeper.repositories.time_entries import SqlTimeEntryRepository
from timekeeper.services.clock import (TRANSITIONS, ClockEvent, ClockService,
                                       EntryPhase, transition_for,
                                       worked_hours)

MONDAY = date(2024, 3, 11)


@pytest.fixture
def service(db_session: AsyncSession, frozen_clock) -> ClockService:
    return ClockService(
        SqlTimeEntryRepository(db_session),
        SqlUserDirectory(db_session),
        SqlProjectDirectory(db_session),
        now=frozen_clock,
    )


# ── Transition table ────────────────────────────────────────────────
def test_transition_table_covers_every_event_and_phase():
    assert len(TRANSITIONS) == len(ClockEvent) * len(EntryPhase)
    for (event, phase), transition in TRANSITIONS.items():
        if transition.allowed:
            assert transition.resets_status, (event, phase)
            assert transition.target is not None
        else:
            assert transition.error


def test_transition_for_rejects_illegal_moves():
    with pytest.raises(InvalidStateError):
        transition_for(ClockEvent.CLOCK_OUT, EntryPhase.CLOCKED_OUT)
    with pytest.raises(InvalidStateError):
        transition_for(ClockEvent.BREAK_START, EntryPhase.ON_BREAK)
    assert transition_for(ClockEvent.CLOCK_IN, EntryPhase.CLOCKED_OUT).target is EntryPhase.CLOCKED_IN


def test_worked_hours_subtracts_breaks_and_never_goes_negative():
    start = datetime(2024, 3, 11, 0, 0, tzinfo=timezone.utc)
    end = datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc)
    assert worked_hours(start, end, 60) == 8.0
    assert worked_hours(start, end, 0) == 9.0
    assert worked_hours(start, end, 600) == 0.0


# ── Clock in / out ──────────────────────────────────────────────────
async def test_clock_in_creates_pending_entry(service, directory):
    entry = await service.clock_in(directory.alice.id, location="HQ")
    assert entry.id is not None
    assert entry.date == MONDAY
    assert entry.status == "PENDING"
    assert entry.clock_out is None
    assert entry.clock_in_location == "HQ"


async def test_clock_in_for_unknown_user(service, directory):
    with pytest.raises(NotFoundError):
        await service.clock_in(9999)


async def test_clock_in_outside_calendar_range(service, directory):
    with pytest.raises(ValidationError):
        await service.clock_in(directory.alice.id, date(1999, 12, 31))


async def test_full_day_computes_worked_hours(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)

    frozen_clock.advance(hours=3)
    record = await service.start_break(entry.id, directory.alice.id)
    frozen_clock.advance(minutes=45)
    record = await service.end_break(record.id, directory.alice.id)
    assert record.duration_minutes == 45

    frozen_clock.advance(hours=5, minutes=15)
    entry = await service.clock_out(entry.id, directory.alice.id)
    # 9h on site minus a 45 minute break
    assert entry.break_minutes == 45
    assert entry.worked_hours == 8.25


async def test_double_clock_out_is_rejected(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=8)
    await service.clock_out(entry.id, directory.alice.id)

    frozen_clock.advance(minutes=5)
    with pytest.raises(InvalidStateError):
        await service.clock_out(entry.id, directory.alice.id)


async def test_clock_out_must_follow_clock_in(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)
    with pytest.raises(InvalidStateError):
        await service.clock_out(entry.id, directory.alice.id)


async def test_clock_out_of_someone_elses_entry_is_not_found(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=1)
    with pytest.raises(NotFoundError):
        await service.clock_out(entry.id, directory.bob.id)


async def test_reclock_in_resets_approved_entry(service, directory, frozen_clock, make_entry):
    approved = await make_entry(directory.alice, MONDAY, status="APPROVED")

    frozen_clock.advance(hours=10)
    entry = await service.clock_in(directory.alice.id, MONDAY)
    assert entry.id == approved.id
    assert entry.status == "PENDING"
    assert entry.approved_by is None
    assert entry.clock_out is None
    assert entry.worked_hours == 0.0


async def test_reclock_in_clears_rejection(service, directory, frozen_clock, make_entry):
    await make_entry(directory.alice, MONDAY, status="REJECTED")
    frozen_clock.advance(hours=10)
    entry = await service.clock_in(directory.alice.id, MONDAY)
    assert entry.status == "PENDING"
    assert entry.rejection_reason is None
    assert entry.rejected_at is None


# ── Breaks ──────────────────────────────────────────────────────────
async def test_break_rules(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=1)
    record = await service.start_break(entry.id, directory.alice.id, "Lunch")
    assert record.reason == "Lunch"

    with pytest.raises(InvalidStateError):
        await service.start_break(entry.id, directory.alice.id)

    frozen_clock.advance(minutes=30)
    await service.end_break(record.id, directory.alice.id)
    with pytest.raises(InvalidStateError):
        await service.end_break(record.id, directory.alice.id)


async def test_break_after_clock_out_is_rejected(service, directory, frozen_clock):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=8)
    await service.clock_out(entry.id, directory.alice.id)
    with pytest.raises(InvalidStateError):
        await service.start_break(entry.id, directory.alice.id)


async def test_open_break_closed_after_clock_out_recomputes_hours(service, directory, frozen_clock, db_session):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=4)
    record = await service.start_break(entry.id, directory.alice.id)
    frozen_clock.advance(minutes=30)
    entry = await service.clock_out(entry.id, directory.alice.id)
    assert entry.worked_hours == 4.5

    frozen_clock.advance(minutes=30)
    await service.end_break(record.id, directory.alice.id)
    entry = await SqlTimeEntryRepository(db_session).get(entry.id, lock=True)
    assert entry.break_minutes == 60
    assert entry.worked_hours == 3.5


async def test_break_minutes_are_resummed_from_closed_breaks(service, directory, frozen_clock, db_session):
    entry = await service.clock_in(directory.alice.id)
    for minutes in (10, 20):
        frozen_clock.advance(hours=1)
        record = await service.start_break(entry.id, directory.alice.id)
        frozen_clock.advance(minutes=minutes)
        await service.end_break(record.id, directory.alice.id)

    entry = await SqlTimeEntryRepository(db_session).get(entry.id, lock=True)
    assert entry.break_minutes == 30
    assert len(entry.breaks) == 2


async def test_reclock_in_during_break_closes_it_and_starts_a_clean_cycle(
    service, directory, frozen_clock, db_session
):
    repo = SqlTimeEntryRepository(db_session)
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=1)
    stale = await service.start_break(entry.id, directory.alice.id)

    frozen_clock.advance(hours=2)
    entry = await service.clock_in(directory.alice.id)
    assert await repo.get_open_break(entry.id) is None
    assert entry.break_minutes == 0

    closed = await repo.get_break(stale.id, lock=True)
    assert closed.duration_minutes == 120
    with pytest.raises(InvalidStateError):
        await service.end_break(stale.id, directory.alice.id)

    record = await service.start_break(entry.id, directory.alice.id)
    frozen_clock.advance(hours=1)
    await service.end_break(record.id, directory.alice.id)
    frozen_clock.advance(hours=1)
    entry = await service.clock_out(entry.id, directory.alice.id)
    assert entry.break_minutes == 60
    assert entry.worked_hours == 1.0


async def test_closing_a_break_twice_leaves_totals_unchanged(service, directory, frozen_clock, db_session):
    entry = await service.clock_in(directory.alice.id)
    frozen_clock.advance(hours=2)
    record = await service.start_break(entry.id, directory.alice.id)
    frozen_clock.advance(minutes=45)
    entry = await service.clock_out(entry.id, directory.alice.id)
    frozen_clock.advance(minutes=15)
    await service.end_break(record.id, directory.alice.id)

    repo = SqlTimeEntryRepository(db_session)
    first = await repo.get(entry.id, lock=True)
    totals = (first.break_minutes, first.worked_hours)
    assert totals == (60, 1.75)

    frozen_clock.advance(hours=1)
    with pytest.raises(InvalidStateError):
        await service.end_break(record.id, directory.alice.id)
    again = await repo.get(entry.id, lock=True)
    assert (again.break_minutes, again.worked_hours) == totals


async def test_end_unknown_break(service, directory):
    with pytest.raises(NotFoundError):
        await service.end_break(4242, directory.alice.id)


# ── Listing & work reports ──────────────────────────────────────────
async def test_list_entries_only_returns_own(service, directory, make_entry):
    await make_entry(directory.alice, date(2024, 3, 4))
    await make_entry(directory.alice, date(2024, 3, 5), status="APPROVED")
    await make_entry(directory.bob, date(2024, 3, 4))

    rows, total = await service.list_entries(directory.alice.id)
    assert total == 2
    assert [r.date for r in rows] == [date(2024, 3, 5), date(2024, 3, 4)]

    rows, total = await service.list_entries(directory.alice.id, status="APPROVED")
    assert total == 1


async def test_list_entries_validates_input(service, directory):
    with pytest.raises(ValidationError):
        await service.list_entries(directory.alice.id, status="LOST")
    with pytest.raises(ValidationError):
        await service.list_entries(directory.alice.id, start_date=date(2024, 3, 5), end_date=date(2024, 3, 1))


async def test_work_report_checks_project_company(service, directory):
    entry = await service.clock_in(directory.alice.id)
    report = await service.add_work_report(
        entry.id, directory.alice.id, project_id=directory.apollo.id, description="Design review", hours=2
    )
    assert report.project_name == "Apollo"

    with pytest.raises(PermissionDeniedError):
        await service.add_work_report(entry.id, directory.alice.id, project_id=directory.zephyr.id, description="x")
    with pytest.raises(NotFoundError):
        await service.add_work_report(entry.id, directory.alice.id, project_id=999, description="x")
