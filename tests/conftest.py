"""Pytest configuration and fixtures."""
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from license_server.auth.dependencies import get_settings
from license_server.config import Settings
from license_server.database import Base, get_db
from license_server.models.license import License  # noqa: F401
from main import app

ADMIN_SECRET = "test-admin-secret"
LICENSE_SECRET = "test-signing-secret"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values = dict(
        ADMIN_SECRET=ADMIN_SECRET,
        LICENSE_REGIME="stateful",
        LICENSE_SECRET="",
        NOTIFY_WEBHOOK_URL="",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database, fresh per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'licenses.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    AsyncSessionLocal = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    yield AsyncSessionLocal

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(session_factory):
    """A single database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def client(session_factory, settings):
    """API client; each request gets its own session like in production."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"x-admin-secret": ADMIN_SECRET}
