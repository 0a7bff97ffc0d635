"""
Health & status endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.api.v1.deps import get_current_active_user, get_db
from timekeeper.core.config import settings
from timekeeper.models.time_entry import TimeEntry
from timekeeper.models.user import User
from timekeeper.schemas.attendance import HealthResponse, StatusResponse
from timekeeper.services.lateness import local_zone

router = APIRouter(tags=["ops"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check: DB and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)

    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)

    try:
        r = aioredis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        result.redis = True
    except Exception as e:
        logger.error("Health check Redis failure: %s", e)

    return result


@router.get("/status", response_model=StatusResponse)
async def system_status(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> StatusResponse:
    """Active users, today's entries and the approval backlog."""
    today = datetime.now(timezone.utc).astimezone(local_zone()).date()

    users = await db.execute(select(func.count(User.id)).where(User.is_active.is_(True)))
    today_entries = await db.execute(select(func.count(TimeEntry.id)).where(TimeEntry.date == today))
    pending = await db.execute(select(func.count(TimeEntry.id)).where(TimeEntry.status == "PENDING"))

    return StatusResponse(
        active_users=users.scalar() or 0,
        today_entries=today_entries.scalar() or 0,
        pending_entries=pending.scalar() or 0,
        status="operational",
    )
