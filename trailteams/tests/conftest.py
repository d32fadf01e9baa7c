"""
Shared pytest configuration for backend tests.

Every test gets a fresh in-memory SQLite database (aiosqlite), so tests are
isolated and need no external services. Privileged database functions are
Postgres-only; tests substitute ``FakeGateway`` to drive those paths.
"""

import os

os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from trailteams.database.db import Base  # noqa: E402
from trailteams.database.models import Profile, Team, TeamMember, TeamRole, WalkCompletion  # noqa: E402
from trailteams.services.privileged_service import PrivilegedGateway, PrivilegedResult  # noqa: E402


class FakeGateway(PrivilegedGateway):
    """
    In-memory stand-in for the privileged functions.

    ``results`` maps a function name to a PrivilegedResult, or to a callable
    taking the call params and returning one. Anything not configured is
    UNAVAILABLE, like a deployment without the functions installed.
    """

    def __init__(self, results=None):
        super().__init__()
        self.results = dict(results or {})
        self.calls = []

    async def call(self, session, name, params=None):
        self.calls.append((name, params or {}))
        configured = self.results.get(name)
        if configured is None:
            return PrivilegedResult.unavailable(f"{name} is not installed")
        if callable(configured):
            return configured(params or {})
        return configured

    def called(self, name):
        return [params for called_name, params in self.calls if called_name == name]


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; take over transaction control so SAVEPOINTs work
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Session bound to the per-test database."""
    async_session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session


@pytest.fixture
def fake_gateway():
    """Gateway with no privileged functions installed."""
    return FakeGateway()


# ──────────────────────────────────────────────────────────────
# Data helpers
# ──────────────────────────────────────────────────────────────


async def create_profile(db_session, user_id, name=None, latitude=None, longitude=None, **kwargs):
    """Helper: insert a profile and return it."""
    profile = Profile(
        id=user_id,
        name=name or user_id.title(),
        latitude=latitude,
        longitude=longitude,
        **kwargs,
    )
    db_session.add(profile)
    await db_session.flush()
    await db_session.refresh(profile)
    return profile


async def create_team_row(db_session, leader_id, name="Los Caminantes", max_members=14, members=()):
    """Helper: insert a team with a leader and optional extra members directly."""
    team = Team(name=name, created_by=leader_id, max_members=max_members)
    db_session.add(team)
    await db_session.flush()
    db_session.add(TeamMember(team_id=team.id, user_id=leader_id, role=TeamRole.LEADER.value))
    for user_id in members:
        db_session.add(TeamMember(team_id=team.id, user_id=user_id, role=TeamRole.MEMBER.value))
    await db_session.flush()
    await db_session.refresh(team)
    return team


async def add_walk(db_session, user_id, distance_km, week_number=1, day_of_week="lunes"):
    """Helper: record a walk completion."""
    walk = WalkCompletion(
        user_id=user_id,
        week_number=week_number,
        day_of_week=day_of_week,
        distance_km=distance_km,
    )
    db_session.add(walk)
    await db_session.flush()
    return walk
