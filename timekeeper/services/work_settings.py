"""
Work-settings resolution: which schedule applies to a user on a date.

Precedence, field by field: an active project assignment covering the
date, then the user's personal settings, then the system defaults. The
interval used for punch rounding is always personal.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional

from timekeeper.core.config import settings
from timekeeper.core.enums import SettingSource
from timekeeper.core.exceptions import NotFoundError, ValidationError
from timekeeper.core.scope import Scope, require_company
from timekeeper.core.timeutils import MINUTES_PER_DAY, parse_hhmm
from timekeeper.models.work_settings import (ProjectWorkSettings,
                                             UserWorkSettings,
                                             WorkSettingsAssignment)
from timekeeper.repositories.directory import ProjectDirectory, UserDirectory
from timekeeper.repositories.work_settings import (WorkSettingsRepository,
                                                   covering)

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = (
    "work_start_time",
    "work_end_time",
    "break_minutes",
    "overtime_threshold_hours",
    "transportation_cost",
)


@dataclass(frozen=True)
class SystemDefaults:
    work_start_time: str = "09:00"
    work_end_time: str = "18:00"
    break_minutes: int = 60
    overtime_threshold_hours: float = 8.0
    time_interval_minutes: int = 15
    transportation_cost: float = 0.0

    @classmethod
    def from_settings(cls) -> "SystemDefaults":
        return cls(
            work_start_time=settings.DEFAULT_WORK_START_TIME,
            work_end_time=settings.DEFAULT_WORK_END_TIME,
            break_minutes=settings.DEFAULT_BREAK_MINUTES,
            overtime_threshold_hours=settings.DEFAULT_OVERTIME_THRESHOLD_HOURS,
            time_interval_minutes=settings.DEFAULT_TIME_INTERVAL_MINUTES,
        )


@dataclass(frozen=True)
class EffectiveWorkSettings:
    work_start_time: Optional[str]
    work_end_time: Optional[str]
    break_minutes: int
    overtime_threshold_hours: float
    time_interval_minutes: int
    transportation_cost: float
    scheduled_hours: float
    setting_source: SettingSource
    project_name: Optional[str] = None
    project_setting_name: Optional[str] = None
    conflicting_setting_ids: tuple[int, ...] = field(default_factory=tuple)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicting_setting_ids)


def scheduled_hours(start: Optional[str], end: Optional[str], break_minutes: int) -> float:
    """Scheduled working hours; a shift ending before it starts wraps past midnight."""
    if not start or not end:
        return 0.0
    span = (parse_hhmm(end) - parse_hhmm(start)) % MINUTES_PER_DAY
    return round(max(0, span - (break_minutes or 0)) / 60, 2)


def _pick(field_name: str, *sources: Any) -> Any:
    for source in sources:
        if source is None:
            continue
        value = getattr(source, field_name)
        if value is not None:
            return value
    return None


def merge_settings(
    personal: Optional[UserWorkSettings],
    active: Sequence[WorkSettingsAssignment],
    defaults: SystemDefaults,
) -> EffectiveWorkSettings:
    """Combine the pieces for one day.

    ``active`` holds the assignments covering the day, already in creation
    order; only the first one is applied.
    """
    chosen: Optional[ProjectWorkSettings] = active[0].work_settings if active else None

    values = {name: _pick(name, chosen, personal, defaults) for name in _SCHEDULE_FIELDS}
    interval = _pick("time_interval_minutes", personal, defaults)

    if chosen is not None:
        source = SettingSource.PROJECT
    elif personal is not None:
        source = SettingSource.PERSONAL
    else:
        source = SettingSource.DEFAULT

    return EffectiveWorkSettings(
        work_start_time=values["work_start_time"],
        work_end_time=values["work_end_time"],
        break_minutes=int(values["break_minutes"] or 0),
        overtime_threshold_hours=float(values["overtime_threshold_hours"] or 0.0),
        time_interval_minutes=int(interval or 0),
        transportation_cost=float(values["transportation_cost"] or 0.0),
        scheduled_hours=scheduled_hours(
            values["work_start_time"], values["work_end_time"], int(values["break_minutes"] or 0)
        ),
        setting_source=source,
        project_name=chosen.project.name if chosen is not None and chosen.project is not None else None,
        project_setting_name=chosen.name if chosen is not None else None,
        conflicting_setting_ids=tuple(a.project_work_settings_id for a in active) if len(active) > 1 else (),
    )


class WorkSettingsResolver:
    """Read-only resolver; one instance per request."""

    def __init__(
        self,
        repo: WorkSettingsRepository,
        users: UserDirectory,
        defaults: Optional[SystemDefaults] = None,
    ):
        self._repo = repo
        self._users = users
        self._defaults = defaults or SystemDefaults.from_settings()

    def _check_date(self, on: date) -> None:
        if not settings.MIN_YEAR <= on.year <= settings.MAX_YEAR:
            raise ValidationError(f"Date {on.isoformat()} is outside the supported calendar range")

    async def _load(self, user_id: int):
        if await self._users.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        personal = await self._repo.get_user_settings(user_id)
        assignments = await self._repo.list_active_assignments(user_id)
        return personal, assignments

    async def resolve(self, user_id: int, on: date) -> EffectiveWorkSettings:
        self._check_date(on)
        personal, assignments = await self._load(user_id)
        effective = merge_settings(personal, covering(assignments, on), self._defaults)
        if effective.has_conflict:
            logger.warning(
                "User %s has %d active project settings on %s (%s); using the first",
                user_id,
                len(effective.conflicting_setting_ids),
                on.isoformat(),
                effective.conflicting_setting_ids,
            )
        return effective

    async def resolve_range(self, user_id: int, start: date, end: date) -> dict[date, EffectiveWorkSettings]:
        """Resolve every day in ``start..end`` from a single load."""
        self._check_date(start)
        self._check_date(end)
        if end < start:
            raise ValidationError("Range end is before its start")
        personal, assignments = await self._load(user_id)

        resolved: dict[date, EffectiveWorkSettings] = {}
        conflicted: list[str] = []
        day = start
        while day <= end:
            effective = merge_settings(personal, covering(assignments, day), self._defaults)
            if effective.has_conflict:
                conflicted.append(day.isoformat())
            resolved[day] = effective
            day += timedelta(days=1)

        if conflicted:
            logger.warning(
                "User %s has overlapping project settings on %d day(s) between %s and %s",
                user_id,
                len(conflicted),
                conflicted[0],
                conflicted[-1],
            )
        return resolved


class WorkSettingsService:
    """Personal settings upkeep and project schedule administration."""

    def __init__(
        self,
        repo: WorkSettingsRepository,
        users: UserDirectory,
        projects: ProjectDirectory,
    ):
        self._repo = repo
        self._users = users
        self._projects = projects

    async def get_personal(self, user_id: int) -> Optional[UserWorkSettings]:
        return await self._repo.get_user_settings(user_id)

    async def update_personal(self, user_id: int, values: dict[str, Any]) -> UserWorkSettings:
        _validate_schedule(values)
        record = await self._repo.upsert_user_settings(user_id, values)
        await self._repo.commit()
        logger.info("Personal work settings updated for user %s", user_id)
        return record

    async def create_project_settings(
        self, scope: Scope, project_id: int, values: dict[str, Any]
    ) -> ProjectWorkSettings:
        project = await self._projects.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        require_company(scope, project.company_id)
        _validate_schedule(values)

        record = await self._repo.add_project_settings(ProjectWorkSettings(project_id=project_id, **values))
        await self._repo.commit()
        logger.info("Project work settings %s created for project %s", record.id, project_id)
        return record

    async def assign(
        self,
        scope: Scope,
        setting_id: int,
        *,
        user_id: int,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> WorkSettingsAssignment:
        setting = await self._repo.get_project_settings(setting_id)
        if setting is None:
            raise NotFoundError(f"Work setting {setting_id} not found")
        require_company(scope, setting.project.company_id)

        user = await self._users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        require_company(scope, user.company_id)
        if end_date is not None and end_date < start_date:
            raise ValidationError("Assignment end date is before its start date")

        assignment = await self._repo.add_assignment(
            WorkSettingsAssignment(
                project_work_settings_id=setting_id,
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                is_active=True,
            )
        )
        await self._repo.commit()
        logger.info("User %s assigned to work setting %s from %s", user_id, setting_id, start_date)
        return assignment


def _validate_schedule(values: dict[str, Any]) -> None:
    for name in ("work_start_time", "work_end_time"):
        if values.get(name) is not None:
            parse_hhmm(values[name])
    for name in ("break_minutes", "time_interval_minutes", "transportation_cost", "overtime_threshold_hours"):
        if values.get(name) is not None and values[name] < 0:
            raise ValidationError(f"{name} must not be negative")
