"""
Time-entry storage: the repository protocol the services depend on and
its AsyncSession implementation.

Single-row mutations lock the row (``SELECT ... FOR UPDATE``) and are
flushed as one UPDATE so a status reset always lands together with the
timestamp change. Status transitions are conditional UPDATEs so two
approvers racing on the same row cannot both win.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol

from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.exceptions import PermissionDeniedError
from timekeeper.core.scope import AllScope, CompanyScope, Scope, UserScope
from timekeeper.models.time_entry import BreakRecord, TimeEntry, WorkReport
from timekeeper.models.user import User


@dataclass(frozen=True)
class EntryFilter:
    status: Optional[str] = None
    project_id: Optional[int] = None
    user_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class TimeEntryRepository(Protocol):
    async def get(self, entry_id: int, *, lock: bool = False) -> Optional[TimeEntry]:
        raise NotImplementedError

    async def get_for_user_and_date(self, user_id: int, on: date, *, lock: bool = False) -> Optional[TimeEntry]:
        raise NotImplementedError

    async def get_many(self, entry_ids: Sequence[int], *, lock: bool = False) -> Sequence[TimeEntry]:
        raise NotImplementedError

    async def add(self, entry: TimeEntry) -> TimeEntry:
        raise NotImplementedError

    async def save(self, entry: TimeEntry) -> TimeEntry:
        raise NotImplementedError

    async def get_break(self, break_id: int, *, lock: bool = False) -> Optional[BreakRecord]:
        raise NotImplementedError

    async def get_open_break(self, entry_id: int) -> Optional[BreakRecord]:
        raise NotImplementedError

    async def add_break(self, record: BreakRecord) -> BreakRecord:
        raise NotImplementedError

    async def save_break(self, record: BreakRecord) -> BreakRecord:
        raise NotImplementedError

    async def sum_closed_break_minutes(self, entry_id: int, *, since: Optional[datetime] = None) -> int:
        """Total minutes of closed breaks, optionally only those started at or after ``since``."""
        raise NotImplementedError

    async def add_work_report(self, report: WorkReport) -> WorkReport:
        raise NotImplementedError

    async def list_for_users(self, user_ids: Sequence[int], start: date, end: date) -> Sequence[TimeEntry]:
        raise NotImplementedError

    async def list_in_scope(self, scope: Scope, start: date, end: date) -> Sequence[TimeEntry]:
        raise NotImplementedError

    async def page_in_scope(
        self, scope: Scope, filters: EntryFilter, *, offset: int, limit: int
    ) -> tuple[Sequence[TimeEntry], int]:
        raise NotImplementedError

    async def transition_status(
        self,
        entry_ids: Sequence[int],
        *,
        to_status: str,
        actor_id: int,
        at: datetime,
        reason: Optional[str] = None,
    ) -> int:
        """Move PENDING rows among ``entry_ids`` to ``to_status``; return rows changed."""
        raise NotImplementedError

    async def pending_ids_for_user(self, user_id: int, start: date, end: date) -> Sequence[int]:
        raise NotImplementedError

    async def commit(self) -> None:
        raise NotImplementedError

    async def rollback(self) -> None:
        raise NotImplementedError


def apply_scope(stmt, scope: Scope):
    if isinstance(scope, CompanyScope):
        return stmt.where(User.company_id == scope.company_id)
    if isinstance(scope, UserScope):
        return stmt.where(TimeEntry.user_id == scope.user_id)
    if isinstance(scope, AllScope):
        return stmt
    raise PermissionDeniedError("Unknown access scope")


class SqlTimeEntryRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, entry_id: int, *, lock: bool = False) -> Optional[TimeEntry]:
        stmt = select(TimeEntry).where(TimeEntry.id == entry_id)
        if lock:
            stmt = stmt.with_for_update(of=TimeEntry).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def get_for_user_and_date(self, user_id: int, on: date, *, lock: bool = False) -> Optional[TimeEntry]:
        stmt = select(TimeEntry).where(TimeEntry.user_id == user_id, TimeEntry.date == on)
        if lock:
            stmt = stmt.with_for_update(of=TimeEntry).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def get_many(self, entry_ids: Sequence[int], *, lock: bool = False) -> Sequence[TimeEntry]:
        if not entry_ids:
            return []
        stmt = select(TimeEntry).where(TimeEntry.id.in_(list(entry_ids))).order_by(TimeEntry.id)
        if lock:
            stmt = stmt.with_for_update(of=TimeEntry).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return list(result.unique().scalars().all())

    async def add(self, entry: TimeEntry) -> TimeEntry:
        self._session.add(entry)
        await self._session.flush()
        await self._session.refresh(entry)
        return entry

    async def save(self, entry: TimeEntry) -> TimeEntry:
        await self._session.flush()
        await self._session.refresh(entry)
        return entry

    async def get_break(self, break_id: int, *, lock: bool = False) -> Optional[BreakRecord]:
        stmt = select(BreakRecord).where(BreakRecord.id == break_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_open_break(self, entry_id: int) -> Optional[BreakRecord]:
        result = await self._session.execute(
            select(BreakRecord)
            .where(BreakRecord.time_entry_id == entry_id, BreakRecord.end_time.is_(None))
            .order_by(BreakRecord.start_time.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_break(self, record: BreakRecord) -> BreakRecord:
        self._session.add(record)
        await self._session.flush()
        await self._session.refresh(record)
        return record

    async def save_break(self, record: BreakRecord) -> BreakRecord:
        await self._session.flush()
        await self._session.refresh(record)
        return record

    async def sum_closed_break_minutes(self, entry_id: int, *, since: Optional[datetime] = None) -> int:
        conditions = [BreakRecord.time_entry_id == entry_id, BreakRecord.end_time.is_not(None)]
        if since is not None:
            conditions.append(BreakRecord.start_time >= since)
        result = await self._session.execute(
            select(func.coalesce(func.sum(BreakRecord.duration_minutes), 0)).where(*conditions)
        )
        return int(result.scalar() or 0)

    async def add_work_report(self, report: WorkReport) -> WorkReport:
        self._session.add(report)
        await self._session.flush()
        await self._session.refresh(report)
        return report

    async def list_for_users(self, user_ids: Sequence[int], start: date, end: date) -> Sequence[TimeEntry]:
        if not user_ids:
            return []
        result = await self._session.execute(
            select(TimeEntry)
            .where(
                TimeEntry.user_id.in_(list(user_ids)),
                TimeEntry.date >= start,
                TimeEntry.date <= end,
            )
            .order_by(TimeEntry.user_id, TimeEntry.date.asc())
        )
        return list(result.unique().scalars().all())

    async def list_in_scope(self, scope: Scope, start: date, end: date) -> Sequence[TimeEntry]:
        stmt = (
            select(TimeEntry)
            .join(User, TimeEntry.user_id == User.id)
            .where(TimeEntry.date >= start, TimeEntry.date <= end)
            .order_by(TimeEntry.user_id, TimeEntry.date.asc())
        )
        result = await self._session.execute(apply_scope(stmt, scope))
        return list(result.unique().scalars().all())

    async def page_in_scope(
        self, scope: Scope, filters: EntryFilter, *, offset: int, limit: int
    ) -> tuple[Sequence[TimeEntry], int]:
        conditions = []
        if filters.status:
            conditions.append(TimeEntry.status == filters.status)
        if filters.start_date:
            conditions.append(TimeEntry.date >= filters.start_date)
        if filters.end_date:
            conditions.append(TimeEntry.date <= filters.end_date)
        if filters.user_name:
            # Escape SQL LIKE metacharacters to prevent wildcard injection
            safe = filters.user_name.replace("%", r"\%").replace("_", r"\_")
            conditions.append(
                or_(
                    User.full_name.ilike(f"%{safe}%", escape="\\"),
                    User.email.ilike(f"%{safe}%", escape="\\"),
                )
            )
        if filters.project_id is not None:
            conditions.append(
                exists().where(
                    WorkReport.time_entry_id == TimeEntry.id,
                    WorkReport.project_id == filters.project_id,
                )
            )

        def _filtered(stmt):
            stmt = stmt.join(User, TimeEntry.user_id == User.id).where(*conditions)
            return apply_scope(stmt, scope)

        base = _filtered(select(TimeEntry))
        total_result = await self._session.execute(_filtered(select(func.count(TimeEntry.id))))
        rows_result = await self._session.execute(
            base.order_by(TimeEntry.date.desc(), User.full_name.asc(), TimeEntry.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return list(rows_result.unique().scalars().all()), int(total_result.scalar() or 0)

    async def transition_status(
        self,
        entry_ids: Sequence[int],
        *,
        to_status: str,
        actor_id: int,
        at: datetime,
        reason: Optional[str] = None,
    ) -> int:
        if not entry_ids:
            return 0
        if to_status == "APPROVED":
            values = {"status": to_status, "approved_by": actor_id, "approved_at": at}
        else:
            values = {
                "status": to_status,
                "rejected_by": actor_id,
                "rejected_at": at,
                "rejection_reason": reason,
            }
        result = await self._session.execute(
            update(TimeEntry)
            .where(TimeEntry.id.in_(list(entry_ids)), TimeEntry.status == "PENDING")
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return int(result.rowcount or 0)

    async def pending_ids_for_user(self, user_id: int, start: date, end: date) -> Sequence[int]:
        result = await self._session.execute(
            select(TimeEntry.id).where(
                TimeEntry.user_id == user_id,
                TimeEntry.status == "PENDING",
                TimeEntry.date >= start,
                TimeEntry.date <= end,
            )
        )
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
