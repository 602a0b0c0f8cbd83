"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite). StaticPool
   keeps one connection alive so every session sees the same database.
2. The schema is created from the ORM models, then thrown away with the
   engine after the test, so nothing leaks between tests.
3. The app's get_db dependency is overridden to hand out sessions from
   that engine, so the real auth pipeline (JWT + guard + service) runs.

Env vars are set before tenantkit is imported: settings are read once.
"""

import os

os.environ.setdefault("TENANTKIT_ENVIRONMENT", "test")
os.environ.setdefault("TENANTKIT_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TENANTKIT_DATABASE_URL", "sqlite+aiosqlite://")

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tenantkit.db.engine import get_db
from tenantkit.db.models import Base
from tenantkit.main import app

PASSWORD = "Passw0rd!"


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Session for tests that poke at the database directly."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client against the app, backed by the per-test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def signup(client):
    """Sign up through the API; returns the JSON body plus the credentials."""

    async def _signup(email=None, password=PASSWORD, role=None, **extra):
        body = {
            "email": email or unique_email(),
            "password": password,
            "firstName": extra.pop("firstName", "Test"),
            "lastName": extra.pop("lastName", "User"),
            **extra,
        }
        if role:
            body["role"] = role
        r = await client.post("/api/v1/auth/signup", json=body)
        assert r.status_code == 201, r.text
        return {**r.json(), "email": body["email"], "password": password}

    return _signup
