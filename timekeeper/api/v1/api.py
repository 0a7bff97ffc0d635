"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from timekeeper.api.v1.endpoints import (approval, clock, corrections,
                                         health, stats, work_settings)

api_router = APIRouter()

# Punches, breaks, own entries, work reports
api_router.include_router(clock.router)

# Monthly / company statistics
api_router.include_router(stats.router)

# Approvals, project summaries, exports
api_router.include_router(approval.router)

# Administrative corrections, transportation costs
api_router.include_router(corrections.router)

# Personal & project schedules
api_router.include_router(work_settings.router)

# Health, status
api_router.include_router(health.router)
