"""
Punch endpoints: clock-in / clock-out, breaks, own entries and work reports.

Every route acts on the caller's own entries; an entry owned by somebody
else answers 404.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from timekeeper.api.v1.deps import get_clock_service, get_current_active_user
from timekeeper.core.config import settings
from timekeeper.models.user import User
from timekeeper.schemas.attendance import (BreakRead, BreakStartRequest,
                                           ClockInRequest, ClockOutRequest,
                                           TimeEntryPage, TimeEntryRead,
                                           WorkReportCreate, WorkReportRead)
from timekeeper.services.clock import ClockService

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)

# Rate limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


@router.post("/clock-in", response_model=TimeEntryRead, status_code=201)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def clock_in(
    request: Request,
    body: ClockInRequest,
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> TimeEntryRead:
    """Clock in for ``body.date`` (today by default); re-clocking restarts the day."""
    entry = await service.clock_in(current_user.id, body.date, location=body.location, note=body.note)
    return TimeEntryRead.model_validate(entry)


@router.patch("/clock-out/{entry_id}", response_model=TimeEntryRead)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def clock_out(
    request: Request,
    entry_id: int,
    body: Optional[ClockOutRequest] = None,
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> TimeEntryRead:
    body = body or ClockOutRequest()
    entry = await service.clock_out(entry_id, current_user.id, location=body.location, note=body.note)
    return TimeEntryRead.model_validate(entry)


@router.post("/break-start/{entry_id}", response_model=BreakRead, status_code=201)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def break_start(
    request: Request,
    entry_id: int,
    body: Optional[BreakStartRequest] = None,
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> BreakRead:
    record = await service.start_break(entry_id, current_user.id, body.reason if body else None)
    return BreakRead.model_validate(record)


@router.patch("/break-end/{break_id}", response_model=BreakRead)
@limiter.limit(settings.CLOCK_RATE_LIMIT)
async def break_end(
    request: Request,
    break_id: int,
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> BreakRead:
    record = await service.end_break(break_id, current_user.id)
    return BreakRead.model_validate(record)


@router.get("/entries", response_model=TimeEntryPage)
async def list_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    status: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> TimeEntryPage:
    """Paginated list of the caller's own entries, newest first."""
    rows, total = await service.list_entries(
        current_user.id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        status=status.upper() if status else None,
    )
    return TimeEntryPage.build(rows, total, page, limit)


@router.post("/work-reports/{entry_id}", response_model=WorkReportRead, status_code=201)
async def add_work_report(
    entry_id: int,
    body: WorkReportCreate,
    current_user: User = Depends(get_current_active_user),
    service: ClockService = Depends(get_clock_service),
) -> WorkReportRead:
    report = await service.add_work_report(
        entry_id,
        current_user.id,
        project_id=body.project_id,
        description=body.description,
        hours=body.hours,
    )
    return WorkReportRead.model_validate(report)
