"""
Monthly statistics for the caller, another user in scope, and the whole
company.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from timekeeper.api.v1.deps import (get_aggregator, get_current_active_user,
                                    get_scope, require_approver)
from timekeeper.core.exceptions import ValidationError
from timekeeper.core.scope import Scope
from timekeeper.models.user import User
from timekeeper.schemas.stats import CompanyStatsResponse, MonthlyStatsResponse
from timekeeper.services.stats import StatisticsAggregator

router = APIRouter(prefix="/attendance", tags=["statistics"])


@router.get("/monthly-stats/{year}/{month}", response_model=MonthlyStatsResponse)
async def monthly_stats(
    year: int = Path(...),
    month: int = Path(...),
    current_user: User = Depends(get_current_active_user),
    scope: Scope = Depends(get_scope),
    aggregator: StatisticsAggregator = Depends(get_aggregator),
) -> MonthlyStatsResponse:
    """The caller's own month, with every entry annotated."""
    stats = await aggregator.monthly_stats(scope, current_user.id, year, month)
    return MonthlyStatsResponse.from_stats(stats)


@router.get("/user-stats/{user_id}", response_model=MonthlyStatsResponse)
async def user_stats(
    user_id: int,
    year: int = Query(...),
    month: int = Query(...),
    scope: Scope = Depends(get_scope),
    aggregator: StatisticsAggregator = Depends(get_aggregator),
) -> MonthlyStatsResponse:
    stats = await aggregator.monthly_stats(scope, user_id, year, month)
    return MonthlyStatsResponse.from_stats(stats)


@router.get("/company-stats", response_model=CompanyStatsResponse)
async def company_stats(
    year: int = Query(...),
    month: int = Query(...),
    company_id: Optional[int] = Query(None, alias="companyId"),
    top: Optional[int] = Query(None, ge=1, le=100),
    current_user: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    aggregator: StatisticsAggregator = Depends(get_aggregator),
) -> CompanyStatsResponse:
    """Company dashboard; defaults to the caller's own company."""
    target = company_id if company_id is not None else current_user.company_id
    if target is None:
        raise ValidationError("companyId is required")
    stats = await aggregator.company_stats(scope, target, year, month, top_n=top)
    return CompanyStatsResponse.from_stats(stats)
