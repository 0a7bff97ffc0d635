"""
Read-only views of the user & project directories.

The engine never writes users or projects; it only reads them to scope
approvals and to group pending work by project.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.scope import Scope
from timekeeper.models.project import Project, ProjectMembership
from timekeeper.models.time_entry import TimeEntry, WorkReport
from timekeeper.models.user import User
from timekeeper.repositories.time_entries import apply_scope


class UserDirectory(Protocol):
    async def get_user(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    async def list_company_users(self, company_id: int) -> Sequence[User]:
        raise NotImplementedError


class ProjectDirectory(Protocol):
    async def get_project(self, project_id: int) -> Optional[Project]:
        raise NotImplementedError

    async def get_project_members(self, project_id: int) -> Sequence[tuple[User, bool]]:
        """Members of a project as ``(user, is_manager)`` pairs."""
        raise NotImplementedError

    async def get_managed_projects(self, company_id: Optional[int]) -> Sequence[Project]:
        """Projects of ``company_id``; every project when ``company_id`` is None."""
        raise NotImplementedError

    async def pending_counts_by_project(self, scope: Scope) -> tuple[dict[int, int], int]:
        """Pending entries per project id, plus entries with no work report."""
        raise NotImplementedError


class SqlUserDirectory:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self._session.get(User, user_id)

    async def list_company_users(self, company_id: int) -> Sequence[User]:
        result = await self._session.execute(
            select(User)
            .where(User.company_id == company_id, User.is_active.is_(True))
            .order_by(User.id)
        )
        return list(result.scalars().all())


class SqlProjectDirectory:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_project(self, project_id: int) -> Optional[Project]:
        return await self._session.get(Project, project_id)

    async def get_project_members(self, project_id: int) -> Sequence[tuple[User, bool]]:
        result = await self._session.execute(
            select(User, ProjectMembership.is_manager)
            .join(ProjectMembership, ProjectMembership.user_id == User.id)
            .where(ProjectMembership.project_id == project_id)
            .order_by(User.full_name.asc(), User.id.asc())
        )
        return [(user, bool(is_manager)) for user, is_manager in result.all()]

    async def get_managed_projects(self, company_id: Optional[int]) -> Sequence[Project]:
        stmt = select(Project).order_by(Project.name.asc(), Project.id.asc())
        if company_id is not None:
            stmt = stmt.where(Project.company_id == company_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def pending_counts_by_project(self, scope: Scope) -> tuple[dict[int, int], int]:
        def _scoped(stmt):
            stmt = stmt.join(User, TimeEntry.user_id == User.id).where(TimeEntry.status == "PENDING")
            return apply_scope(stmt, scope)

        per_project = await self._session.execute(
            _scoped(
                select(WorkReport.project_id, func.count(func.distinct(TimeEntry.id)))
                .select_from(TimeEntry)
                .join(WorkReport, WorkReport.time_entry_id == TimeEntry.id)
            ).group_by(WorkReport.project_id)
        )
        counts = {int(project_id): int(count) for project_id, count in per_project.all()}

        unassigned = await self._session.execute(
            _scoped(select(func.count(TimeEntry.id)).select_from(TimeEntry)).where(
                ~select(WorkReport.id).where(WorkReport.time_entry_id == TimeEntry.id).exists()
            )
        )
        return counts, int(unassigned.scalar() or 0)
