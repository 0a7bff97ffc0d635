"""
Work-settings storage: personal defaults, project schedules and the dated
assignments linking users to them.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from timekeeper.models.work_settings import (ProjectWorkSettings,
                                             UserWorkSettings,
                                             WorkSettingsAssignment)


class WorkSettingsRepository(Protocol):
    async def get_user_settings(self, user_id: int) -> Optional[UserWorkSettings]:
        raise NotImplementedError

    async def upsert_user_settings(self, user_id: int, values: dict[str, Any]) -> UserWorkSettings:
        raise NotImplementedError

    async def list_active_assignments(self, user_id: int) -> Sequence[WorkSettingsAssignment]:
        """Active assignments of ``user_id`` in creation order of their settings."""
        raise NotImplementedError

    async def get_project_settings(self, setting_id: int) -> Optional[ProjectWorkSettings]:
        raise NotImplementedError

    async def add_project_settings(self, settings: ProjectWorkSettings) -> ProjectWorkSettings:
        raise NotImplementedError

    async def add_assignment(self, assignment: WorkSettingsAssignment) -> WorkSettingsAssignment:
        raise NotImplementedError

    async def commit(self) -> None:
        raise NotImplementedError


class SqlWorkSettingsRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_user_settings(self, user_id: int) -> Optional[UserWorkSettings]:
        result = await self._session.execute(
            select(UserWorkSettings).where(UserWorkSettings.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert_user_settings(self, user_id: int, values: dict[str, Any]) -> UserWorkSettings:
        current = await self.get_user_settings(user_id)
        if current is None:
            current = UserWorkSettings(user_id=user_id)
            self._session.add(current)
        for field, value in values.items():
            setattr(current, field, value)
        await self._session.flush()
        await self._session.refresh(current)
        return current

    async def list_active_assignments(self, user_id: int) -> Sequence[WorkSettingsAssignment]:
        result = await self._session.execute(
            select(WorkSettingsAssignment)
            .join(ProjectWorkSettings, WorkSettingsAssignment.project_work_settings_id == ProjectWorkSettings.id)
            .where(
                WorkSettingsAssignment.user_id == user_id,
                WorkSettingsAssignment.is_active.is_(True),
            )
            .options(
                selectinload(WorkSettingsAssignment.work_settings).selectinload(ProjectWorkSettings.project)
            )
            .order_by(ProjectWorkSettings.created_at.asc(), ProjectWorkSettings.id.asc(), WorkSettingsAssignment.id.asc())
        )
        return list(result.scalars().all())

    async def get_project_settings(self, setting_id: int) -> Optional[ProjectWorkSettings]:
        result = await self._session.execute(
            select(ProjectWorkSettings)
            .where(ProjectWorkSettings.id == setting_id)
            .options(selectinload(ProjectWorkSettings.project))
        )
        return result.scalar_one_or_none()

    async def add_project_settings(self, settings: ProjectWorkSettings) -> ProjectWorkSettings:
        self._session.add(settings)
        await self._session.flush()
        await self._session.refresh(settings)
        return settings

    async def add_assignment(self, assignment: WorkSettingsAssignment) -> WorkSettingsAssignment:
        self._session.add(assignment)
        await self._session.flush()
        await self._session.refresh(assignment)
        return assignment

    async def commit(self) -> None:
        await self._session.commit()


def covering(assignments: Sequence[WorkSettingsAssignment], on: date) -> list[WorkSettingsAssignment]:
    return [a for a in assignments if a.covers(on)]
