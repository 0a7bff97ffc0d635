"""
Shared test fixtures for the Timekeeper test suite.

Async throughout (aiosqlite + AsyncSession). Tables are created and
dropped around every test; requests act as whichever user the test puts
into ``acting``.
"""

import os
import sys
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["TIMEZONE_OFFSET"] = "+09:00"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timekeeper.api.v1.deps import get_current_active_user, get_db
from timekeeper.db.base import Base
from timekeeper.main import app
from timekeeper.models.project import Project, ProjectMembership
from timekeeper.models.time_entry import TimeEntry, WorkReport
from timekeeper.models.user import User
from timekeeper.services.clock import worked_hours

LOCAL = timezone(timedelta(hours=9))

# Separate engine for the whole session; the app's own engine is never used.
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Auth Overrides ──────────────────────────────────────────────────
class _Acting:
    user: Optional[User] = None


acting = _Acting()


async def _override_get_current_active_user() -> User:
    assert acting.user is not None, "test did not pick an acting user"
    return acting.user


app.dependency_overrides[get_current_active_user] = _override_get_current_active_user


@pytest.fixture
def act_as():
    """``act_as(user)`` makes every following request come from ``user``."""

    def _set(user: User) -> User:
        acting.user = user
        return user

    yield _set
    acting.user = None


# ── Clock ───────────────────────────────────────────────────────────
class FrozenClock:
    """Injectable ``now`` that only moves when told to."""

    def __init__(self, at: datetime):
        self.at = at

    def __call__(self) -> datetime:
        return self.at

    def advance(self, **delta) -> datetime:
        self.at = self.at + timedelta(**delta)
        return self.at


@pytest.fixture
def frozen_clock() -> FrozenClock:
    # 2024-03-11 (a Monday) at 09:00 local
    return FrozenClock(datetime(2024, 3, 11, 0, 0, tzinfo=timezone.utc))


def local_instant(day: date, hhmm: str) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes), tzinfo=LOCAL).astimezone(timezone.utc)


# ── Directory seed ──────────────────────────────────────────────────
@dataclass
class Directory:
    admin: User
    owner: User
    manager: User
    alice: User
    bob: User
    carol: User
    apollo: Project
    hermes: Project
    zephyr: Project


@pytest.fixture
async def directory() -> Directory:
    """Two companies, their people and projects.

    Company 1: owner (COMPANY), manager (MANAGER), alice & bob (MEMBER);
    projects Apollo (alice, bob, manager as lead) and Hermes (alice).
    Company 2: carol (MEMBER) on project Zephyr. ``admin`` is system-wide.
    """
    async with TestingSessionLocal() as db_session:
        return await _seed_directory(db_session)


async def _seed_directory(db_session: AsyncSession) -> Directory:
    admin = User(email="root@sys.test", full_name="Root Admin", role="ADMIN", company_id=None)
    owner = User(email="owner@acme.test", full_name="Olivia Owner", role="COMPANY", company_id=1)
    manager = User(email="manager@acme.test", full_name="Mark Manager", role="MANAGER", company_id=1)
    alice = User(email="alice@acme.test", full_name="Alice Anders", role="MEMBER", company_id=1)
    bob = User(email="bob@acme.test", full_name="Bob Berg", role="MEMBER", company_id=1)
    carol = User(email="carol@globex.test", full_name="Carol Chen", role="MEMBER", company_id=2)
    db_session.add_all([admin, owner, manager, alice, bob, carol])
    await db_session.flush()

    apollo = Project(company_id=1, name="Apollo", status="ACTIVE")
    hermes = Project(company_id=1, name="Hermes", status="ACTIVE")
    zephyr = Project(company_id=2, name="Zephyr", status="ACTIVE")
    db_session.add_all([apollo, hermes, zephyr])
    await db_session.flush()

    db_session.add_all(
        [
            ProjectMembership(project_id=apollo.id, user_id=alice.id),
            ProjectMembership(project_id=apollo.id, user_id=bob.id),
            ProjectMembership(project_id=apollo.id, user_id=manager.id, is_manager=True),
            ProjectMembership(project_id=hermes.id, user_id=alice.id),
            ProjectMembership(project_id=zephyr.id, user_id=carol.id),
        ]
    )
    await db_session.commit()
    return Directory(admin, owner, manager, alice, bob, carol, apollo, hermes, zephyr)


@pytest.fixture
def make_entry():
    """Insert a finished workday directly; times are local wall clock."""

    async def _make(
        user: User,
        day: date,
        start: Optional[str] = "09:00",
        end: Optional[str] = "18:00",
        *,
        break_minutes: int = 60,
        status: str = "PENDING",
        projects: tuple = (),
        transportation_cost: Optional[float] = None,
    ) -> TimeEntry:
        clock_in = local_instant(day, start) if start else None
        clock_out = local_instant(day, end) if end else None
        entry = TimeEntry(
            user_id=user.id,
            date=day,
            clock_in=clock_in,
            clock_out=clock_out,
            break_minutes=break_minutes,
            worked_hours=worked_hours(clock_in, clock_out, break_minutes) if clock_in and clock_out else 0.0,
            status=status,
            transportation_cost=transportation_cost,
        )
        async with TestingSessionLocal() as session:
            session.add(entry)
            await session.flush()
            for project in projects:
                session.add(WorkReport(time_entry_id=entry.id, project_id=project.id, description="work"))
            await session.commit()
        return entry

    return _make
