"""
Monthly statistics for one user and for a whole company.

Entries are annotated with the schedule resolved for their own day
before anything is summed, so lateness and overtime always use the rules
that applied on that date.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Optional

from timekeeper.core.config import settings
from timekeeper.core.enums import EntryStatus
from timekeeper.core.exceptions import NotFoundError
from timekeeper.core.scope import Scope, ensure_allowed, require_company
from timekeeper.core.timeutils import (count_weekdays, ensure_utc,
                                       format_minutes, minute_of_day,
                                       month_bounds, to_local)
from timekeeper.models.time_entry import TimeEntry
from timekeeper.models.user import User
from timekeeper.repositories.directory import UserDirectory
from timekeeper.repositories.time_entries import TimeEntryRepository
from timekeeper.services.lateness import (LateArrival, check_late_arrival,
                                          local_zone, overtime_hours)
from timekeeper.services.work_settings import (EffectiveWorkSettings,
                                               WorkSettingsResolver)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnnotatedEntry:
    entry: TimeEntry
    effective: EffectiveWorkSettings
    lateness: Optional[LateArrival]
    overtime_hours: float
    transportation_cost: float

    @property
    def is_late(self) -> bool:
        return self.lateness is not None and self.lateness.is_late


@dataclass(frozen=True)
class MonthlyStats:
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
    entries: tuple[AnnotatedEntry, ...] = ()


@dataclass(frozen=True)
class StatusBreakdown:
    status: str
    count: int
    average_work_hours: float


@dataclass(frozen=True)
class UserSummary:
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


@dataclass(frozen=True)
class RankingRow:
    rank: int
    user_id: int
    name: str
    approved_hours: float
    approved_entries: int


@dataclass(frozen=True)
class CompanyStats:
    company_id: int
    year: int
    month: int
    user_count: int
    total_entries: int
    total_work_hours: float
    working_days: int
    status_breakdown: tuple[StatusBreakdown, ...]
    users: tuple[UserSummary, ...]
    ranking: tuple[RankingRow, ...]


def _mean_minute(values: Sequence[int]) -> Optional[int]:
    if not values:
        return None
    return int(math.floor(sum(values) / len(values) + 0.5))


def annotate(entry: TimeEntry, effective: EffectiveWorkSettings, tz: Optional[tzinfo]) -> AnnotatedEntry:
    lateness = None
    if entry.clock_in is not None:
        # Stored punches are UTC even when the driver hands them back naive.
        lateness = check_late_arrival(ensure_utc(entry.clock_in), effective, tz)
    if entry.transportation_cost is not None:
        transport = float(entry.transportation_cost)
    elif entry.clock_in is not None:
        transport = effective.transportation_cost
    else:
        transport = 0.0
    return AnnotatedEntry(
        entry=entry,
        effective=effective,
        lateness=lateness,
        overtime_hours=overtime_hours(entry.worked_hours or 0.0, effective.overtime_threshold_hours),
        transportation_cost=transport,
    )


def summarize_month(
    user_id: int,
    year: int,
    month: int,
    annotated: Sequence[AnnotatedEntry],
    tz: Optional[tzinfo],
) -> MonthlyStats:
    start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
    working_days = count_weekdays(start, end)

    attended = [a for a in annotated if a.entry.clock_in is not None]
    work_days = len({a.entry.date for a in attended})
    total_hours = sum(a.entry.worked_hours or 0.0 for a in annotated)
    by_status: dict[str, int] = defaultdict(int)
    for a in annotated:
        by_status[a.entry.status] += 1

    clock_ins = [minute_of_day(to_local(ensure_utc(a.entry.clock_in), tz)) for a in attended]
    clock_outs = [
        minute_of_day(to_local(ensure_utc(a.entry.clock_out), tz))
        for a in annotated
        if a.entry.clock_out is not None
    ]

    return MonthlyStats(
        user_id=user_id,
        year=year,
        month=month,
        total_days=(end - start).days + 1,
        working_days=working_days,
        work_days=work_days,
        total_work_hours=round(total_hours, 2),
        average_work_hours=round(total_hours / work_days, 2) if work_days else 0.0,
        overtime_hours=round(sum(a.overtime_hours for a in annotated), 2),
        late_count=sum(1 for a in annotated if a.is_late),
        leave_days=sum(1 for a in annotated if a.entry.leave_type),
        pending_count=by_status[EntryStatus.PENDING.value],
        approved_count=by_status[EntryStatus.APPROVED.value],
        rejected_count=by_status[EntryStatus.REJECTED.value],
        attendance_rate=round(work_days / working_days * 100, 1) if working_days else 0.0,
        transportation_cost=round(sum(a.transportation_cost for a in annotated), 2),
        average_clock_in=format_minutes(_mean_minute(clock_ins)),
        average_clock_out=format_minutes(_mean_minute(clock_outs)),
        entries=tuple(annotated),
    )


class StatisticsAggregator:
    def __init__(
        self,
        entries: TimeEntryRepository,
        users: UserDirectory,
        resolver: WorkSettingsResolver,
        tz: Optional[tzinfo] = None,
    ):
        self._entries = entries
        self._users = users
        self._resolver = resolver
        self._tz = tz or local_zone()

    async def _annotated_month(self, user: User, entries: Sequence[TimeEntry], start: date, end: date):
        resolved = await self._resolver.resolve_range(user.id, start, end)
        return [annotate(e, resolved[e.date], self._tz) for e in sorted(entries, key=lambda e: e.date)]

    async def monthly_stats(self, scope: Scope, user_id: int, year: int, month: int) -> MonthlyStats:
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        user = await self._users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        ensure_allowed(scope, user_id=user.id, company_id=user.company_id)

        entries = await self._entries.list_for_users([user.id], start, end)
        annotated = await self._annotated_month(user, entries, start, end)
        return summarize_month(user.id, year, month, annotated, self._tz)

    async def company_stats(
        self,
        scope: Scope,
        company_id: int,
        year: int,
        month: int,
        top_n: Optional[int] = None,
    ) -> CompanyStats:
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        require_company(scope, company_id)
        top_n = top_n or settings.RANKING_SIZE

        users = await self._users.list_company_users(company_id)
        entries = await self._entries.list_for_users([u.id for u in users], start, end)
        by_user: dict[int, list[TimeEntry]] = defaultdict(list)
        for entry in entries:
            by_user[entry.user_id].append(entry)

        status_hours: dict[str, list[float]] = defaultdict(list)
        for entry in entries:
            status_hours[entry.status].append(entry.worked_hours or 0.0)
        breakdown = tuple(
            StatusBreakdown(
                status=status.value,
                count=len(status_hours[status.value]),
                average_work_hours=round(
                    sum(status_hours[status.value]) / len(status_hours[status.value]), 2
                ) if status_hours[status.value] else 0.0,
            )
            for status in EntryStatus
        )

        summaries: list[UserSummary] = []
        for user in users:
            own = by_user.get(user.id, [])
            stats = summarize_month(user.id, year, month, await self._annotated_month(user, own, start, end), self._tz)
            approved = [e for e in own if e.status == EntryStatus.APPROVED.value]
            summaries.append(
                UserSummary(
                    user_id=user.id,
                    name=user.display_name,
                    work_days=stats.work_days,
                    total_work_hours=stats.total_work_hours,
                    approved_hours=round(sum(e.worked_hours or 0.0 for e in approved), 2),
                    overtime_hours=stats.overtime_hours,
                    late_count=stats.late_count,
                    pending_count=stats.pending_count,
                    approved_count=stats.approved_count,
                    rejected_count=stats.rejected_count,
                )
            )

        # Ranking counts approved time only.
        ranked = sorted(
            (s for s in summaries if s.approved_count > 0),
            key=lambda s: (-s.approved_hours, s.name, s.user_id),
        )[:top_n]
        ranking = tuple(
            RankingRow(
                rank=position,
                user_id=s.user_id,
                name=s.name,
                approved_hours=s.approved_hours,
                approved_entries=s.approved_count,
            )
            for position, s in enumerate(ranked, start=1)
        )

        logger.info(
            "Company %s stats for %04d-%02d: %d users, %d entries",
            company_id, year, month, len(users), len(entries),
        )
        return CompanyStats(
            company_id=company_id,
            year=year,
            month=month,
            user_count=len(users),
            total_entries=len(entries),
            total_work_hours=round(sum(e.worked_hours or 0.0 for e in entries), 2),
            working_days=count_weekdays(start, end),
            status_breakdown=breakdown,
            users=tuple(summaries),
            ranking=ranking,
        )
