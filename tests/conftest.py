"""Shared pytest fixtures for backend tests."""

import os

# Settings are read at import time; provide test values before importing taskflow
os.environ.setdefault("DB_SERVER", "localhost")
os.environ.setdefault("DB_NAME", "taskflow_test")
os.environ.setdefault("DB_USER", "taskflow")
os.environ.setdefault("DB_PASSWORD", "taskflow")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-realtime-tests")

from datetime import datetime
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskflow.config import settings
from taskflow.database import Base
from taskflow.main import app
from taskflow.models import Notification, Project, ProjectMember, Task, User
from taskflow.services.gateway import PersistenceGateway
from taskflow.websocket.hub import RealtimeHub
from taskflow.websocket.manager import WebSocketConnection

from helpers import make_websocket, token_for

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine with SQLite."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting rows directly."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway(session_maker) -> PersistenceGateway:
    return PersistenceGateway(session_maker)


@pytest.fixture
def hub(gateway: PersistenceGateway) -> RealtimeHub:
    return RealtimeHub(gateway, settings)


async def _add(db_session: AsyncSession, *rows: Any) -> None:
    db_session.add_all(rows)
    await db_session.commit()
    for row in rows:
        await db_session.refresh(row)


# ============================================================================
# Users, projects and tasks
# ============================================================================


@pytest.fixture
async def owner(db_session: AsyncSession) -> User:
    """Project owner."""
    user = User(name="Olivia Owner", email="owner@example.com", avatar="OO", role="member")
    await _add(db_session, user)
    return user


@pytest.fixture
async def member(db_session: AsyncSession) -> User:
    """Plain project member, assignee of the test task."""
    user = User(name="Max Member", email="member@example.com", avatar="MM", role="member")
    await _add(db_session, user)
    return user


@pytest.fixture
async def outsider(db_session: AsyncSession) -> User:
    """User with no relation to the test project."""
    user = User(name="Otto Outsider", email="outsider@example.com", role="member")
    await _add(db_session, user)
    return user


@pytest.fixture
async def manager_user(db_session: AsyncSession) -> User:
    """Manager outside the test project."""
    user = User(name="Mia Manager", email="manager@example.com", role="manager")
    await _add(db_session, user)
    return user


@pytest.fixture
async def deleted_user(db_session: AsyncSession) -> User:
    user = User(
        name="Gone Gary",
        email="gone@example.com",
        role="member",
        deleted_at=datetime.utcnow(),
    )
    await _add(db_session, user)
    return user


@pytest.fixture
async def project(db_session: AsyncSession, owner: User, member: User) -> Project:
    """Project owned by `owner` with `member` as a member."""
    project = Project(name="Apollo", description="Launch", created_by=owner.id)
    await _add(db_session, project)
    await _add(db_session, ProjectMember(project_id=project.id, user_id=member.id, role="member"))
    return project


@pytest.fixture
async def task(db_session: AsyncSession, project: Project, owner: User, member: User) -> Task:
    """Task in `project`, created by `owner` and assigned to `member`."""
    task = Task(
        title="Write launch plan",
        status="todo",
        priority="medium",
        project_id=project.id,
        created_by=owner.id,
        assignee_id=member.id,
    )
    await _add(db_session, task)
    return task


@pytest.fixture
async def notification(db_session: AsyncSession, member: User) -> Notification:
    row = Notification(
        user_id=member.id,
        type="task_assigned",
        title="Task Assigned",
        message="You were assigned a task",
        priority="normal",
    )
    await _add(db_session, row)
    return row


# ============================================================================
# Connections and clients
# ============================================================================


@pytest.fixture
def connect(hub: RealtimeHub):
    """Open an authenticated hub connection for a user over a mock WebSocket."""

    async def _connect(user: User) -> tuple[WebSocketConnection, AsyncMock]:
        ws = make_websocket(token_for(user))
        connection = await hub.open(ws)
        assert connection is not None
        return connection, ws

    return _connect


@pytest.fixture
async def client(gateway: PersistenceGateway, hub: RealtimeHub) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with test gateway and hub on app.state."""
    app.state.gateway = gateway
    app.state.hub = hub
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
