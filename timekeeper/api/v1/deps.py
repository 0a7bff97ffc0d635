"""
FastAPI dependencies: database session, acting user, request scope and
the per-request services built on top of them.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from timekeeper.core.enums import APPROVER_ROLES, SETTINGS_ADMIN_ROLES, Role
from timekeeper.core.exceptions import PermissionDeniedError
from timekeeper.core.scope import Scope, scope_for
from timekeeper.core.security import decode_access_token
from timekeeper.db.session import async_session_factory
from timekeeper.models.user import User
from timekeeper.repositories.directory import (SqlProjectDirectory,
                                               SqlUserDirectory)
from timekeeper.repositories.time_entries import SqlTimeEntryRepository
from timekeeper.repositories.work_settings import SqlWorkSettingsRepository
from timekeeper.schemas.token import TokenPayload
from timekeeper.services.approval import ApprovalWorkflow
from timekeeper.services.clock import ClockService
from timekeeper.services.corrections import CorrectionService
from timekeeper.services.stats import StatisticsAggregator
from timekeeper.services.work_settings import (WorkSettingsResolver,
                                               WorkSettingsService)

# Tokens come from the identity service; there is no login route here.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT (header first, then cookie) and load the user."""
    final_token = token
    if not final_token and access_token:
        final_token = access_token.split(" ", 1)[1] if access_token.startswith("Bearer ") else access_token

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None:
        raise credentials_exc

    claims = TokenPayload.model_validate(payload)
    if claims.sub is None or not claims.sub.isdigit():
        raise credentials_exc

    user = await db.get(User, int(claims.sub))
    if user is None:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_approver(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Managers, company administrators and system admins only."""
    if Role(current_user.role) not in APPROVER_ROLES:
        raise PermissionDeniedError("Approver role required")
    return current_user


async def require_settings_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    if Role(current_user.role) not in SETTINGS_ADMIN_ROLES:
        raise PermissionDeniedError("Company administrator role required")
    return current_user


async def get_scope(current_user: User = Depends(get_current_active_user)) -> Scope:
    return scope_for(user_id=current_user.id, role=current_user.role, company_id=current_user.company_id)


# ── Services ────────────────────────────────────────────────────────
def get_resolver(db: AsyncSession = Depends(get_db)) -> WorkSettingsResolver:
    return WorkSettingsResolver(SqlWorkSettingsRepository(db), SqlUserDirectory(db))


def get_work_settings_service(db: AsyncSession = Depends(get_db)) -> WorkSettingsService:
    return WorkSettingsService(SqlWorkSettingsRepository(db), SqlUserDirectory(db), SqlProjectDirectory(db))


def get_clock_service(db: AsyncSession = Depends(get_db)) -> ClockService:
    return ClockService(SqlTimeEntryRepository(db), SqlUserDirectory(db), SqlProjectDirectory(db))


def get_aggregator(
    db: AsyncSession = Depends(get_db),
    resolver: WorkSettingsResolver = Depends(get_resolver),
) -> StatisticsAggregator:
    return StatisticsAggregator(SqlTimeEntryRepository(db), SqlUserDirectory(db), resolver)


def get_approval_workflow(db: AsyncSession = Depends(get_db)) -> ApprovalWorkflow:
    return ApprovalWorkflow(SqlTimeEntryRepository(db), SqlUserDirectory(db), SqlProjectDirectory(db))


def get_correction_service(db: AsyncSession = Depends(get_db)) -> CorrectionService:
    return CorrectionService(SqlTimeEntryRepository(db), SqlUserDirectory(db))
