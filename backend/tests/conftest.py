"""
Pytest fixtures and configuration
"""
import os
import sys
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.main import app
from app.database import Base, get_db
from app.config import settings
from app import models  # noqa: F401

ADMIN_USERNAME = "site_admin"
CRON_SECRET = "test-cron-secret"


@pytest.fixture(autouse=True)
def export_settings(tmp_path):
    """Point object storage at a temp dir and pin admin / cron settings"""
    saved = (
        settings.storage_path,
        settings.admin_username,
        settings.cron_secret,
        settings.instance_domain,
        settings.export_supported_formats,
    )
    settings.storage_path = str(tmp_path / "storage")
    settings.admin_username = ADMIN_USERNAME
    settings.cron_secret = CRON_SECRET
    settings.instance_domain = "example.com"
    settings.export_supported_formats = ["json", "activitypub"]
    yield settings
    (
        settings.storage_path,
        settings.admin_username,
        settings.cron_secret,
        settings.instance_domain,
        settings.export_supported_formats,
    ) = saved


@pytest_asyncio.fixture(scope="function")
async def test_db(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """Create test database and session"""
    db_file = tmp_path / "test.db"
    test_db_url = f"sqlite+aiosqlite:///{db_file.as_posix()}"

    engine = create_async_engine(test_db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(test_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with test database"""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client: AsyncClient, username: str, password: str = "testpass123") -> dict:
    response = await client.post("/api/auth/register", json={
        "username": username,
        "password": password,
    })
    assert response.status_code == 200
    return response.json()


@pytest_asyncio.fixture(scope="function")
async def auth_client(client: AsyncClient) -> AsyncGenerator[tuple[AsyncClient, dict], None]:
    """Create authenticated test client"""
    auth_data = await register(client, "testuser")
    client.headers["Authorization"] = f"Bearer {auth_data['token']}"
    yield client, auth_data


@pytest_asyncio.fixture(scope="function")
async def admin_token(client: AsyncClient) -> str:
    """Register the configured admin and return its token"""
    auth_data = await register(client, ADMIN_USERNAME)
    return auth_data["token"]


@pytest.fixture
def cron_headers() -> dict:
    return {"Cron-Secret": CRON_SECRET}
