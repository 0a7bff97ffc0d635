"""
Approval workflow: PENDING -> APPROVED / REJECTED, one entry at a time or
in bulk, plus the project-grouped read side used by approvers.

Every write is a conditional UPDATE on ``status = 'PENDING'``. Scope is
checked before anything is written, and bulk calls report how many rows
actually moved.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from timekeeper.core.config import settings
from timekeeper.core.enums import EntryStatus
from timekeeper.core.exceptions import (DomainError, InvalidStateError,
                                        NotFoundError, PermissionDeniedError,
                                        ValidationError)
from timekeeper.core.scope import (CompanyScope, Scope, UserScope,
                                   ensure_allowed, require_company)
from timekeeper.core.timeutils import ensure_utc, month_bounds
from timekeeper.models.project import Project
from timekeeper.models.time_entry import TimeEntry
from timekeeper.repositories.directory import ProjectDirectory, UserDirectory
from timekeeper.repositories.time_entries import (EntryFilter,
                                                  TimeEntryRepository)
from timekeeper.services.export import ExportSnapshot, freeze_entries

logger = logging.getLogger(__name__)

NO_PROJECT_NAME = "No project"
BULK_ACTIONS = frozenset({EntryStatus.APPROVED.value, EntryStatus.REJECTED.value})


@dataclass(frozen=True)
class BulkFailure:
    entry_id: int
    kind: str
    message: str


@dataclass(frozen=True)
class BulkResult:
    updated_count: int
    total_requested: int
    failures: tuple[BulkFailure, ...] = ()


@dataclass(frozen=True)
class MemberBulkResult:
    member_user_id: int
    action: str
    year: int
    month: int
    updated_count: int


@dataclass
class PendingGroup:
    project_id: Optional[int]
    project_name: str
    entries: list[TimeEntry] = field(default_factory=list)


@dataclass(frozen=True)
class PendingPage:
    groups: tuple[PendingGroup, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class ProjectPending:
    project_id: Optional[int]
    name: str
    pending_count: int


@dataclass(frozen=True)
class MemberSummary:
    user_id: int
    name: str
    email: str
    is_manager: bool
    total_entries: int
    work_days: int
    work_hours: float
    pending_count: int
    approved_count: int
    rejected_count: int
    approval_rate: float
    can_export: bool


@dataclass(frozen=True)
class ProjectSummary:
    project_id: int
    name: str
    status: Optional[str]
    members: tuple[MemberSummary, ...]
    total_pending: int
    total_approved: int
    can_export_project: bool


@dataclass(frozen=True)
class SummaryReport:
    year: int
    month: int
    projects: tuple[ProjectSummary, ...]

    @property
    def total_members(self) -> int:
        return sum(len(p.members) for p in self.projects)

    @property
    def total_pending(self) -> int:
        return sum(p.total_pending for p in self.projects)


def member_summary(user, is_manager: bool, entries: Sequence[TimeEntry]) -> MemberSummary:
    counts = {status.value: 0 for status in EntryStatus}
    for entry in entries:
        counts[entry.status] = counts.get(entry.status, 0) + 1
    total = len(entries)
    return MemberSummary(
        user_id=user.id,
        name=user.display_name,
        email=user.email,
        is_manager=is_manager,
        total_entries=total,
        work_days=sum(1 for e in entries if e.clock_in is not None and e.clock_out is not None),
        work_hours=round(sum(e.worked_hours or 0.0 for e in entries), 2),
        pending_count=counts[EntryStatus.PENDING.value],
        approved_count=counts[EntryStatus.APPROVED.value],
        rejected_count=counts[EntryStatus.REJECTED.value],
        approval_rate=round(counts[EntryStatus.APPROVED.value] / total * 100, 1) if total else 0.0,
        can_export=counts[EntryStatus.PENDING.value] == 0 and total > 0,
    )


def _require_approver(scope: Scope) -> None:
    if isinstance(scope, UserScope):
        raise PermissionDeniedError("Approver role required")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalWorkflow:
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

    # ── Single entry ────────────────────────────────────────────────
    async def _decide(
        self,
        scope: Scope,
        approver_id: int,
        entry_id: int,
        to_status: str,
        reason: Optional[str] = None,
    ) -> TimeEntry:
        _require_approver(scope)
        entry = await self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Time entry {entry_id} not found")
        ensure_allowed(scope, user_id=entry.user_id, company_id=entry.user.company_id)
        if entry.status != EntryStatus.PENDING.value:
            raise InvalidStateError(f"Time entry {entry_id} is {entry.status}, not PENDING")

        changed = await self._entries.transition_status(
            [entry_id], to_status=to_status, actor_id=approver_id, at=ensure_utc(self._now()), reason=reason
        )
        if changed == 0:
            await self._entries.rollback()
            raise InvalidStateError(f"Time entry {entry_id} was changed by someone else")
        await self._entries.commit()
        logger.info("Entry %s %s by user %s", entry_id, to_status, approver_id)
        return entry

    async def approve(self, scope: Scope, approver_id: int, entry_id: int) -> TimeEntry:
        return await self._decide(scope, approver_id, entry_id, EntryStatus.APPROVED.value)

    async def reject(self, scope: Scope, approver_id: int, entry_id: int, reason: str) -> TimeEntry:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        return await self._decide(scope, approver_id, entry_id, EntryStatus.REJECTED.value, reason.strip())

    # ── Bulk ────────────────────────────────────────────────────────
    async def bulk_approve(self, scope: Scope, approver_id: int, entry_ids: Sequence[int]) -> BulkResult:
        """Approve every eligible entry in one UPDATE; report the rest."""
        _require_approver(scope)
        requested = list(dict.fromkeys(entry_ids))
        if not requested:
            raise ValidationError("No time entries given")

        found = {e.id: e for e in await self._entries.get_many(requested, lock=True)}
        eligible: list[int] = []
        failures: list[BulkFailure] = []
        for entry_id in requested:
            entry = found.get(entry_id)
            try:
                if entry is None:
                    raise NotFoundError(f"Time entry {entry_id} not found")
                ensure_allowed(scope, user_id=entry.user_id, company_id=entry.user.company_id)
                if entry.status != EntryStatus.PENDING.value:
                    raise InvalidStateError(f"Time entry {entry_id} is {entry.status}, not PENDING")
            except DomainError as exc:
                failures.append(BulkFailure(entry_id=entry_id, kind=exc.kind, message=exc.message))
                continue
            eligible.append(entry_id)

        updated = await self._entries.transition_status(
            eligible, to_status=EntryStatus.APPROVED.value, actor_id=approver_id, at=ensure_utc(self._now())
        )
        await self._entries.commit()
        if updated != len(eligible):
            logger.warning("Bulk approve moved %d of %d eligible entries", updated, len(eligible))
        logger.info(
            "Bulk approve by user %s: %d/%d updated, %d failed",
            approver_id, updated, len(requested), len(failures),
        )
        return BulkResult(updated_count=updated, total_requested=len(requested), failures=tuple(failures))

    async def _member_month(
        self,
        scope: Scope,
        approver_id: int,
        member_user_id: int,
        year: int,
        month: int,
        action: str,
        reason: Optional[str],
    ) -> MemberBulkResult:
        _require_approver(scope)
        if action not in BULK_ACTIONS:
            raise ValidationError(f"Action must be one of {sorted(BULK_ACTIONS)}")
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        member = await self._users.get_user(member_user_id)
        if member is None:
            raise NotFoundError(f"User {member_user_id} not found")
        ensure_allowed(scope, user_id=member.id, company_id=member.company_id)

        pending = await self._entries.pending_ids_for_user(member.id, start, end)
        updated = await self._entries.transition_status(
            pending, to_status=action, actor_id=approver_id, at=ensure_utc(self._now()), reason=reason
        )
        await self._entries.commit()
        logger.info(
            "Member %s %04d-%02d: %d entries %s by user %s",
            member.id, year, month, updated, action, approver_id,
        )
        return MemberBulkResult(
            member_user_id=member.id, action=action, year=year, month=month, updated_count=updated
        )

    async def bulk_approve_by_member(
        self,
        scope: Scope,
        approver_id: int,
        member_user_id: int,
        year: int,
        month: int,
        action: str = EntryStatus.APPROVED.value,
        reason: Optional[str] = None,
    ) -> MemberBulkResult:
        if action == EntryStatus.REJECTED.value and not (reason and reason.strip()):
            raise ValidationError("A rejection reason is required")
        return await self._member_month(scope, approver_id, member_user_id, year, month, action, reason)

    async def bulk_reject_by_member(
        self,
        scope: Scope,
        approver_id: int,
        member_user_id: int,
        year: int,
        month: int,
        reason: str,
    ) -> MemberBulkResult:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")
        return await self._member_month(
            scope, approver_id, member_user_id, year, month, EntryStatus.REJECTED.value, reason.strip()
        )

    # ── Read side ───────────────────────────────────────────────────
    async def pending_approvals(
        self,
        scope: Scope,
        filters: EntryFilter,
        *,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> PendingPage:
        _require_approver(scope)
        limit = limit or settings.DEFAULT_PAGE_LIMIT
        if page < 1 or not 1 <= limit <= settings.MAX_PAGE_LIMIT:
            raise ValidationError("Invalid pagination parameters")
        if filters.status is not None and filters.status not in {s.value for s in EntryStatus}:
            raise ValidationError(f"Unknown status '{filters.status}'")
        if filters.start_date and filters.end_date and filters.end_date < filters.start_date:
            raise ValidationError("End date is before start date")

        rows, total = await self._entries.page_in_scope(scope, filters, offset=(page - 1) * limit, limit=limit)

        no_project = PendingGroup(project_id=None, project_name=NO_PROJECT_NAME)
        groups: dict[int, PendingGroup] = {}
        for entry in rows:
            project_ids = []
            for report in entry.work_reports:
                if filters.project_id is not None and report.project_id != filters.project_id:
                    continue
                if report.project_id in project_ids:
                    continue
                project_ids.append(report.project_id)
                group = groups.setdefault(
                    report.project_id,
                    PendingGroup(project_id=report.project_id, project_name=report.project.name),
                )
                group.entries.append(entry)
            if not project_ids:
                no_project.entries.append(entry)

        ordered = sorted(groups.values(), key=lambda g: (g.project_name, g.project_id or 0))
        if no_project.entries:
            ordered.insert(0, no_project)
        return PendingPage(groups=tuple(ordered), total=total, page=page, limit=limit)

    async def approval_projects(self, scope: Scope) -> list[ProjectPending]:
        """Projects visible to the approver with their pending entry counts."""
        _require_approver(scope)
        company_id = scope.company_id if isinstance(scope, CompanyScope) else None
        projects = await self._projects.get_managed_projects(company_id)
        counts, unassigned = await self._projects.pending_counts_by_project(scope)

        result = [
            ProjectPending(project_id=p.id, name=p.name, pending_count=counts.get(p.id, 0))
            for p in projects
        ]
        if unassigned > 0:
            result.insert(0, ProjectPending(project_id=None, name=NO_PROJECT_NAME, pending_count=unassigned))
        return result

    async def _projects_in_scope(self, scope: Scope, project_id: Optional[int]) -> list[Project]:
        if project_id is not None:
            project = await self._projects.get_project(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            require_company(scope, project.company_id)
            return [project]
        _require_approver(scope)
        company_id = scope.company_id if isinstance(scope, CompanyScope) else None
        return list(await self._projects.get_managed_projects(company_id))

    async def _project_summary(self, project: Project, year: int, month: int) -> tuple[ProjectSummary, list[TimeEntry]]:
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        members = await self._projects.get_project_members(project.id)
        entries = await self._entries.list_for_users([u.id for u, _ in members], start, end)
        by_user: dict[int, list[TimeEntry]] = {u.id: [] for u, _ in members}
        for entry in entries:
            by_user.setdefault(entry.user_id, []).append(entry)

        summaries = tuple(member_summary(u, is_manager, by_user[u.id]) for u, is_manager in members)
        summary = ProjectSummary(
            project_id=project.id,
            name=project.name,
            status=project.status,
            members=summaries,
            total_pending=sum(m.pending_count for m in summaries),
            total_approved=sum(m.approved_count for m in summaries),
            can_export_project=all(m.pending_count == 0 for m in summaries),
        )
        return summary, list(entries)

    async def project_summary(
        self,
        scope: Scope,
        year: int,
        month: int,
        project_id: Optional[int] = None,
    ) -> SummaryReport:
        _require_approver(scope)
        month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        summaries = []
        for project in await self._projects_in_scope(scope, project_id):
            summary, _ = await self._project_summary(project, year, month)
            summaries.append(summary)
        return SummaryReport(year=year, month=month, projects=tuple(summaries))

    # ── Export gate ─────────────────────────────────────────────────
    async def member_snapshot(self, scope: Scope, user_id: int, year: int, month: int) -> ExportSnapshot:
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        user = await self._users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        ensure_allowed(scope, user_id=user.id, company_id=user.company_id)

        entries = await self._entries.list_for_users([user.id], start, end)
        summary = member_summary(user, False, entries)
        if summary.total_entries == 0:
            raise InvalidStateError("Nothing to export for this period")
        if summary.pending_count > 0:
            raise InvalidStateError(
                f"{summary.pending_count} entries are still pending approval; export is locked"
            )

        logger.info("Export snapshot for user %s %04d-%02d (%d entries)", user.id, year, month, len(entries))
        return ExportSnapshot(
            kind="member",
            entity_id=user.id,
            entity_name=user.display_name,
            year=year,
            month=month,
            period_start=start,
            period_end=end,
            entries=freeze_entries(entries),
            summary=(
                ("work_days", summary.work_days),
                ("work_hours", summary.work_hours),
                ("approved_count", summary.approved_count),
                ("rejected_count", summary.rejected_count),
            ),
        )

    async def project_snapshot(self, scope: Scope, project_id: int, year: int, month: int) -> ExportSnapshot:
        _require_approver(scope)
        start, end = month_bounds(year, month, min_year=settings.MIN_YEAR, max_year=settings.MAX_YEAR)
        (project,) = await self._projects_in_scope(scope, project_id)
        summary, entries = await self._project_summary(project, year, month)
        if not summary.can_export_project:
            raise InvalidStateError(
                f"{summary.total_pending} entries in project {project.name} are still pending approval; export is locked"
            )

        logger.info("Export snapshot for project %s %04d-%02d (%d entries)", project.id, year, month, len(entries))
        return ExportSnapshot(
            kind="project",
            entity_id=project.id,
            entity_name=project.name,
            year=year,
            month=month,
            period_start=start,
            period_end=end,
            entries=freeze_entries(entries),
            summary=(
                ("members", len(summary.members)),
                ("work_hours", round(sum(m.work_hours for m in summary.members), 2)),
                ("approved_count", summary.total_approved),
                ("rejected_count", sum(m.rejected_count for m in summary.members)),
            ),
        )
