"""
Work-settings endpoints: the caller's personal defaults, the schedule
effective on a date, and project schedule administration.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from timekeeper.api.v1.deps import (get_current_active_user, get_resolver,
                                    get_scope, get_work_settings_service,
                                    require_settings_admin)
from timekeeper.core.scope import Scope
from timekeeper.models.user import User
from timekeeper.schemas.work_settings import (AssignmentCreate, AssignmentRead,
                                              EffectiveSettingsRead,
                                              PersonalSettingsRead,
                                              PersonalSettingsUpdate,
                                              ProjectSettingsCreate,
                                              ProjectSettingsRead)
from timekeeper.services.lateness import local_zone
from timekeeper.services.work_settings import (WorkSettingsResolver,
                                               WorkSettingsService)

router = APIRouter(prefix="/work-settings", tags=["work-settings"])


@router.get("/me", response_model=Optional[PersonalSettingsRead])
async def get_my_settings(
    current_user: User = Depends(get_current_active_user),
    service: WorkSettingsService = Depends(get_work_settings_service),
) -> Optional[PersonalSettingsRead]:
    """Personal settings, or ``null`` when the caller has none yet."""
    record = await service.get_personal(current_user.id)
    return PersonalSettingsRead.model_validate(record) if record is not None else None


@router.put("/me", response_model=PersonalSettingsRead)
async def update_my_settings(
    body: PersonalSettingsUpdate,
    current_user: User = Depends(get_current_active_user),
    service: WorkSettingsService = Depends(get_work_settings_service),
) -> PersonalSettingsRead:
    record = await service.update_personal(current_user.id, body.model_dump(exclude_unset=True))
    return PersonalSettingsRead.model_validate(record)


@router.get("/effective", response_model=EffectiveSettingsRead)
async def effective_settings(
    on: Optional[date] = Query(None, alias="date"),
    current_user: User = Depends(get_current_active_user),
    resolver: WorkSettingsResolver = Depends(get_resolver),
) -> EffectiveSettingsRead:
    """Schedule that applies to the caller on ``date`` (today by default)."""
    on = on or datetime.now(timezone.utc).astimezone(local_zone()).date()
    effective = await resolver.resolve(current_user.id, on)
    return EffectiveSettingsRead(
        date=on,
        work_start_time=effective.work_start_time,
        work_end_time=effective.work_end_time,
        break_minutes=effective.break_minutes,
        overtime_threshold_hours=effective.overtime_threshold_hours,
        time_interval_minutes=effective.time_interval_minutes,
        transportation_cost=effective.transportation_cost,
        scheduled_hours=effective.scheduled_hours,
        setting_source=effective.setting_source.value,
        project_name=effective.project_name,
        project_setting_name=effective.project_setting_name,
        conflicting_setting_ids=list(effective.conflicting_setting_ids),
    )


@router.post("/projects/{project_id}", response_model=ProjectSettingsRead, status_code=201)
async def create_project_settings(
    project_id: int,
    body: ProjectSettingsCreate,
    _admin: User = Depends(require_settings_admin),
    scope: Scope = Depends(get_scope),
    service: WorkSettingsService = Depends(get_work_settings_service),
) -> ProjectSettingsRead:
    record = await service.create_project_settings(scope, project_id, body.model_dump())
    return ProjectSettingsRead.model_validate(record)


@router.post("/{setting_id}/assignments", response_model=AssignmentRead, status_code=201)
async def assign_user(
    setting_id: int,
    body: AssignmentCreate,
    _admin: User = Depends(require_settings_admin),
    scope: Scope = Depends(get_scope),
    service: WorkSettingsService = Depends(get_work_settings_service),
) -> AssignmentRead:
    assignment = await service.assign(
        scope, setting_id, user_id=body.user_id, start_date=body.start_date, end_date=body.end_date
    )
    return AssignmentRead.model_validate(assignment)
