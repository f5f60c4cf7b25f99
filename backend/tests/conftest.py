"""Pytest fixtures for CityCare backend tests."""

import os
import tempfile

# Must be set before citycare modules build the engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="citycare-uploads-"))
os.environ.setdefault("ENVIRONMENT", "test")

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from citycare.config import Settings, get_settings
from citycare.database import Base, engine_options, get_db
from citycare.limiter import limiter
from citycare.main import app
from citycare.models import Issue, User
from citycare.services import IssueService, UserService

# In-memory SQLite keeps every test isolated
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Test settings with safe defaults."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        upload_dir=str(tmp_path / "uploads"),
        environment="test",
    )


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine with the users and issues tables."""
    engine = create_async_engine(TEST_DATABASE_URL, **engine_options(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_maker = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, test_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and settings overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def profile_payload() -> dict[str, Any]:
    """Profile as sent by the client after sign-in."""
    return {
        "clerkId": "u1",
        "email": "ada@citycare.org",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "phone": "555-0100",
    }


@pytest.fixture
def issue_payload() -> dict[str, Any]:
    """Minimal valid issue submission for user ``u1``."""
    return {
        "clerkId": "u1",
        "title": "Pothole",
        "description": "Large hole",
        "category": "Potholes",
        "location": "Main St",
    }


@pytest_asyncio.fixture
async def citizen(db_session: AsyncSession, profile_payload: dict[str, Any]) -> User:
    """An existing user with clerkId ``u1``."""
    user, _ = await UserService(db_session).upsert(profile_payload)
    return user


@pytest_asyncio.fixture
async def issue(
    db_session: AsyncSession, citizen: User, issue_payload: dict[str, Any]
) -> Issue:
    """A pending issue owned by ``citizen``."""
    return await IssueService(db_session).create(issue_payload)
