"""
Time-entry state machine: clock-in, breaks and clock-out for one workday.

The phase of an entry is derived from its stored punches. Every legal
move is listed in ``TRANSITIONS``; each one also drops the entry back to
PENDING, and that reset is flushed in the same UPDATE as the punch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError

from timekeeper.core.config import settings
from timekeeper.core.enums import EntryStatus
from timekeeper.core.exceptions import (InvalidStateError, NotFoundError,
                                        PermissionDeniedError, ValidationError)
from timekeeper.core.scope import UserScope
from timekeeper.core.timeutils import elapsed_minutes, ensure_utc, to_local
from timekeeper.models.time_entry import BreakRecord, TimeEntry, WorkReport
from timekeeper.repositories.directory import ProjectDirectory, UserDirectory
from timekeeper.repositories.time_entries import (EntryFilter,
                                                  TimeEntryRepository)
from timekeeper.services.lateness import local_zone

logger = logging.getLogger(__name__)


class EntryPhase(str, Enum):
    NO_ENTRY = "NO_ENTRY"
    CLOCKED_IN = "CLOCKED_IN"
    ON_BREAK = "ON_BREAK"
    CLOCKED_OUT = "CLOCKED_OUT"


class ClockEvent(str, Enum):
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"


@dataclass(frozen=True)
class Transition:
    allowed: bool
    target: Optional[EntryPhase] = None
    resets_status: bool = False
    error: Optional[str] = None


def _ok(target: EntryPhase) -> Transition:
    return Transition(allowed=True, target=target, resets_status=True)


def _deny(message: str) -> Transition:
    return Transition(allowed=False, error=message)


TRANSITIONS: dict[tuple[ClockEvent, EntryPhase], Transition] = {
    # Clocking in again starts a fresh cycle on the same day; an open
    # break is closed at the new clock-in.
    (ClockEvent.CLOCK_IN, EntryPhase.NO_ENTRY): _ok(EntryPhase.CLOCKED_IN),
    (ClockEvent.CLOCK_IN, EntryPhase.CLOCKED_IN): _ok(EntryPhase.CLOCKED_IN),
    (ClockEvent.CLOCK_IN, EntryPhase.ON_BREAK): _ok(EntryPhase.CLOCKED_IN),
    (ClockEvent.CLOCK_IN, EntryPhase.CLOCKED_OUT): _ok(EntryPhase.CLOCKED_IN),
    (ClockEvent.CLOCK_OUT, EntryPhase.NO_ENTRY): _deny("Cannot clock out before clocking in"),
    (ClockEvent.CLOCK_OUT, EntryPhase.CLOCKED_IN): _ok(EntryPhase.CLOCKED_OUT),
    (ClockEvent.CLOCK_OUT, EntryPhase.ON_BREAK): _ok(EntryPhase.CLOCKED_OUT),
    (ClockEvent.CLOCK_OUT, EntryPhase.CLOCKED_OUT): _deny("Already clocked out for this entry"),
    (ClockEvent.BREAK_START, EntryPhase.NO_ENTRY): _deny("Cannot start a break before clocking in"),
    (ClockEvent.BREAK_START, EntryPhase.CLOCKED_IN): _ok(EntryPhase.ON_BREAK),
    (ClockEvent.BREAK_START, EntryPhase.ON_BREAK): _deny("A break is already in progress"),
    (ClockEvent.BREAK_START, EntryPhase.CLOCKED_OUT): _deny("Cannot start a break after clocking out"),
    (ClockEvent.BREAK_END, EntryPhase.NO_ENTRY): _deny("Cannot end a break before clocking in"),
    (ClockEvent.BREAK_END, EntryPhase.CLOCKED_IN): _deny("No break is in progress"),
    (ClockEvent.BREAK_END, EntryPhase.ON_BREAK): _ok(EntryPhase.CLOCKED_IN),
    # A break left open at clock-out may still be closed afterwards.
    (ClockEvent.BREAK_END, EntryPhase.CLOCKED_OUT): _ok(EntryPhase.CLOCKED_OUT),
}


def phase_of(entry: Optional[TimeEntry], open_break: Optional[BreakRecord] = None) -> EntryPhase:
    if entry is None or entry.clock_in is None:
        return EntryPhase.NO_ENTRY
    if entry.clock_out is not None:
        return EntryPhase.CLOCKED_OUT
    if open_break is not None:
        return EntryPhase.ON_BREAK
    return EntryPhase.CLOCKED_IN


def transition_for(event: ClockEvent, phase: EntryPhase) -> Transition:
    transition = TRANSITIONS[(event, phase)]
    if not transition.allowed:
        raise InvalidStateError(transition.error or f"{event.value} is not allowed from {phase.value}")
    return transition


def worked_hours(clock_in: datetime, clock_out: datetime, break_minutes: int) -> float:
    """Net hours between two punches, never negative."""
    worked_minutes = max(0, elapsed_minutes(clock_in, clock_out) - (break_minutes or 0))
    return round(worked_minutes / 60, 2)


def reset_status(entry: TimeEntry) -> None:
    """Drop an entry back to PENDING and clear the previous decision."""
    entry.status = EntryStatus.PENDING.value
    entry.approved_by = None
    entry.approved_at = None
    entry.rejected_by = None
    entry.rejected_at = None
    entry.rejection_reason = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClockService:
    def __init__(
        self,
        entries: TimeEntryRepository,
        users: UserDirectory,
        projects: ProjectDirectory,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._entries = entries
        self._users = users
        self._projects = projects
        self._now = now

    def _apply(self, entry: TimeEntry, event: ClockEvent, phase: EntryPhase) -> Transition:
        transition = transition_for(event, phase)
        if transition.resets_status:
            reset_status(entry)
        return transition

    async def _owned_entry(self, entry_id: int, user_id: int) -> TimeEntry:
        entry = await self._entries.get(entry_id, lock=True)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError(f"Time entry {entry_id} not found")
        return entry

    # ── Clock in ────────────────────────────────────────────────────
    async def clock_in(
        self,
        user_id: int,
        on: Optional[date] = None,
        *,
        location: Optional[str] = None,
        note: Optional[str] = None,
    ) -> TimeEntry:
        """Create today's entry, or restart an existing one."""
        now = ensure_utc(self._now())
        on = on or to_local(now, local_zone()).date()
        if not settings.MIN_YEAR <= on.year <= settings.MAX_YEAR:
            raise ValidationError(f"Date {on.isoformat()} is outside the supported calendar range")
        if await self._users.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        entry = await self._entries.get_for_user_and_date(user_id, on, lock=True)
        if entry is None:
            transition_for(ClockEvent.CLOCK_IN, EntryPhase.NO_ENTRY)
            try:
                entry = await self._entries.add(
                    TimeEntry(
                        user_id=user_id,
                        date=on,
                        clock_in=now,
                        clock_in_location=location,
                        note=note,
                        status=EntryStatus.PENDING.value,
                    )
                )
                await self._entries.commit()
                logger.info("User %s clocked in for %s (entry %s)", user_id, on, entry.id)
                return entry
            except IntegrityError:
                # Lost a race with a concurrent clock-in for the same day.
                await self._entries.rollback()
                logger.warning("Concurrent clock-in for user %s on %s; restarting the stored entry", user_id, on)
                entry = await self._entries.get_for_user_and_date(user_id, on, lock=True)
                if entry is None:
                    raise

        open_break = await self._entries.get_open_break(entry.id)
        phase = phase_of(entry, open_break)
        self._apply(entry, ClockEvent.CLOCK_IN, phase)
        if open_break is not None:
            open_break.end_time = now
            open_break.duration_minutes = max(0, elapsed_minutes(open_break.start_time, now))
            await self._entries.save_break(open_break)
        entry.clock_in = now
        entry.clock_out = None
        entry.worked_hours = 0.0
        entry.clock_in_location = location
        entry.clock_out_location = None
        if note is not None:
            entry.note = note
        entry.break_minutes = await self._entries.sum_closed_break_minutes(entry.id, since=now)
        entry = await self._entries.save(entry)
        await self._entries.commit()
        logger.info("User %s re-clocked in for %s (entry %s, was %s)", user_id, on, entry.id, phase.value)
        return entry

    # ── Clock out ───────────────────────────────────────────────────
    async def clock_out(
        self,
        entry_id: int,
        user_id: int,
        *,
        location: Optional[str] = None,
        note: Optional[str] = None,
    ) -> TimeEntry:
        now = ensure_utc(self._now())
        entry = await self._owned_entry(entry_id, user_id)
        open_break = await self._entries.get_open_break(entry.id)
        phase = phase_of(entry, open_break)
        transition_for(ClockEvent.CLOCK_OUT, phase)
        if now <= ensure_utc(entry.clock_in):
            raise InvalidStateError("Clock-out must be after clock-in")

        self._apply(entry, ClockEvent.CLOCK_OUT, phase)
        entry.clock_out = now
        entry.clock_out_location = location
        if note is not None:
            entry.note = note
        entry.worked_hours = worked_hours(entry.clock_in, now, entry.break_minutes)
        entry = await self._entries.save(entry)
        await self._entries.commit()
        logger.info("User %s clocked out of entry %s (%.2fh)", user_id, entry.id, entry.worked_hours)
        return entry

    # ── Breaks ──────────────────────────────────────────────────────
    async def start_break(self, entry_id: int, user_id: int, reason: Optional[str] = None) -> BreakRecord:
        now = ensure_utc(self._now())
        entry = await self._owned_entry(entry_id, user_id)
        open_break = await self._entries.get_open_break(entry.id)
        phase = phase_of(entry, open_break)
        self._apply(entry, ClockEvent.BREAK_START, phase)

        record = await self._entries.add_break(
            BreakRecord(time_entry_id=entry.id, start_time=now, reason=reason or "Break")
        )
        await self._entries.save(entry)
        await self._entries.commit()
        logger.info("User %s started break %s on entry %s", user_id, record.id, entry.id)
        return record

    async def end_break(self, break_id: int, user_id: int) -> BreakRecord:
        """Close a break and re-sum the closed breaks of the current cycle."""
        now = ensure_utc(self._now())
        record = await self._entries.get_break(break_id)
        if record is None:
            raise NotFoundError(f"Break {break_id} not found")
        entry = await self._owned_entry(record.time_entry_id, user_id)
        record = await self._entries.get_break(break_id, lock=True)
        if record is None:
            raise NotFoundError(f"Break {break_id} not found")
        if record.end_time is not None:
            raise InvalidStateError("Break has already ended")

        phase = phase_of(entry, record)
        self._apply(entry, ClockEvent.BREAK_END, phase)
        record.end_time = now
        record.duration_minutes = max(0, elapsed_minutes(record.start_time, now))
        record = await self._entries.save_break(record)

        entry.break_minutes = await self._entries.sum_closed_break_minutes(
            entry.id, since=ensure_utc(entry.clock_in)
        )
        if entry.clock_out is not None:
            entry.worked_hours = worked_hours(entry.clock_in, entry.clock_out, entry.break_minutes)
        await self._entries.save(entry)
        await self._entries.commit()
        logger.info(
            "User %s ended break %s (%d min); entry %s now has %d break minutes",
            user_id,
            record.id,
            record.duration_minutes,
            entry.id,
            entry.break_minutes,
        )
        return record

    # ── Own entries & work reports ──────────────────────────────────
    async def list_entries(
        self,
        user_id: int,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> tuple[Sequence[TimeEntry], int]:
        limit = limit or settings.DEFAULT_PAGE_LIMIT
        if page < 1 or not 1 <= limit <= settings.MAX_PAGE_LIMIT:
            raise ValidationError("Invalid pagination parameters")
        if start_date and end_date and end_date < start_date:
            raise ValidationError("End date is before start date")
        if status is not None and status not in {s.value for s in EntryStatus}:
            raise ValidationError(f"Unknown status '{status}'")
        filters = EntryFilter(status=status, start_date=start_date, end_date=end_date)
        return await self._entries.page_in_scope(
            UserScope(user_id), filters, offset=(page - 1) * limit, limit=limit
        )

    async def add_work_report(
        self,
        entry_id: int,
        user_id: int,
        *,
        project_id: int,
        description: str,
        hours: Optional[float] = None,
    ) -> WorkReport:
        entry = await self._owned_entry(entry_id, user_id)
        project = await self._projects.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        if entry.user.company_id is not None and project.company_id != entry.user.company_id:
            raise PermissionDeniedError("Project belongs to another company")
        if hours is not None and hours < 0:
            raise ValidationError("Hours must not be negative")

        report = await self._entries.add_work_report(
            WorkReport(time_entry_id=entry.id, project_id=project_id, description=description, hours=hours)
        )
        await self._entries.commit()
        logger.info("Work report %s added to entry %s for project %s", report.id, entry.id, project_id)
        return report
