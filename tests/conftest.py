"""Pytest configuration and shared fixtures.

Every test runs against its own SQLite file through aiosqlite, with the
schema created from the ORM metadata.
"""

import os
import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set testing mode BEFORE importing app so the limiter is disabled and NullPool is used
os.environ["TESTING"] = "true"

from sugarwatch.config import settings

settings.testing = True
settings.webhook_secret = ""

from sugarwatch.core.security import create_access_token, hash_password
from sugarwatch.database import get_engine, get_session_maker, reset_database
from sugarwatch.main import app
from sugarwatch.models import Base, User, UserRole
from sugarwatch.services.dexcom_sync import DexcomPoller
from sugarwatch.services.event_bus import EventBus

TEST_PASSWORD = "SecurePass123"


def unique_email(prefix: str = "test") -> str:
    """Generate a unique email for testing."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}@example.com"


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a stored user."""
    token = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(autouse=True)
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Point the app at a fresh SQLite database for each test."""
    await reset_database()
    settings.database_url = f"sqlite+aiosqlite:///{tmp_path}/test.db"

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await reset_database()


@pytest.fixture(autouse=True)
def event_bus() -> EventBus:
    """Fresh bus and poller on the app for each test."""
    bus = EventBus(max_subscribers=settings.sse_max_subscribers)
    app.state.event_bus = bus
    app.state.dexcom_poller = DexcomPoller(bus)
    return bus


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with get_session_maker()() as session:
        yield session


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def make_user(
    db: AsyncSession,
    role: UserRole = UserRole.PARENT,
    name: str = "Test User",
    is_admin: bool = False,
    is_athlete: bool = False,
) -> User:
    user = User(
        email=unique_email(role.value.lower()),
        name=name,
        hashed_password=hash_password(TEST_PASSWORD),
        role=role,
        is_admin=is_admin,
        is_athlete=is_athlete,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def parent(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.PARENT, name="Pat Parent", is_admin=True)


@pytest_asyncio.fixture
async def athlete(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.ATHLETE, name="Alex Athlete", is_athlete=True)
