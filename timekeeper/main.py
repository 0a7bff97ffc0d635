"""
Timekeeper: application entry point.

This is the **only** file that assembles the app. All business logic
lives in the `services/`, `repositories/` and `core/` packages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from timekeeper.api.v1.api import api_router
from timekeeper.api.v1.endpoints.clock import limiter
from timekeeper.core.config import settings
from timekeeper.core.exceptions import register_exception_handlers
from timekeeper.db.base import Base
from timekeeper.db.session import engine

# Ensure all models are imported so metadata.create_all can see them
from timekeeper.models.project import Project, ProjectMembership  # noqa: F401
from timekeeper.models.time_entry import BreakRecord, TimeEntry, WorkReport  # noqa: F401
from timekeeper.models.user import User  # noqa: F401
from timekeeper.models.work_settings import (ProjectWorkSettings,  # noqa: F401
                                             UserWorkSettings,
                                             WorkSettingsAssignment)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    logger.info("Timekeeper v%s started (local offset %s)", settings.VERSION, settings.TIMEZONE_OFFSET)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Attendance & approval engine",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Punch rate limiting
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
