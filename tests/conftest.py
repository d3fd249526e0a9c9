"""
Pytest configuration and shared fixtures.
Provides a throwaway SQLite database, in-memory store fakes and a test client.
"""

import os
import tempfile

# Must be set before any user_service import: settings and the engine load at import time
os.environ["SKIP_ENV_FILE"] = "1"
os.environ["TEST_MODE"] = "1"
os.environ["ENABLE_METRICS"] = "true"
os.environ.setdefault("APP_ENV", "test")
os.environ["DB_URL"] = "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "user_service_app.db")
os.environ["CACHE_FAIL_OPEN"] = "false"

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from user_service import db as app_db
from user_service.config import CacheSettings
from user_service.crud import SqlUserStore
from user_service.db import Base
from user_service.dependencies import get_user_service
from user_service.main import app
from user_service.services import UserService
from user_service.utils import utcnow


# ==================== In-memory Fakes ====================

@dataclass
class FakeUser:
    id: int
    name: str
    email: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: datetime | None = None


class InMemoryRecordStore:
    """Record store over a dict; hands out copies like a real session would."""

    def __init__(self):
        self.rows: dict[int, FakeUser] = {}
        self.next_id = 1
        self.calls: list[str] = []
        self.writes = 0

    def _visible(self, with_deleted: bool):
        return [u for u in self.rows.values() if with_deleted or u.deleted_at is None]

    def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return any(u.email == email and u.id != exclude_id for u in self.rows.values())

    async def find_by_email(self, email, with_deleted=False):
        self.calls.append("find_by_email")
        for user in self._visible(with_deleted):
            if user.email == email:
                return copy.copy(user)
        return None

    async def find_by_id(self, user_id, with_deleted=False):
        self.calls.append("find_by_id")
        for user in self._visible(with_deleted):
            if user.id == user_id:
                return copy.copy(user)
        return None

    async def find_all(self, with_deleted=False):
        self.calls.append("find_all")
        return [copy.copy(u) for u in sorted(self._visible(with_deleted), key=lambda u: u.id)]

    async def insert(self, name, email):
        self.calls.append("insert")
        if self._email_taken(email):
            raise ValueError("duplicate email")
        user = FakeUser(id=self.next_id, name=name, email=email)
        self.next_id += 1
        self.rows[user.id] = user
        self.writes += 1
        return copy.copy(user)

    async def save(self, user):
        self.calls.append("save")
        if self._email_taken(user.email, exclude_id=user.id):
            raise ValueError("duplicate email")
        self.rows[user.id] = copy.copy(user)
        self.writes += 1
        return copy.copy(user)

    async def soft_delete(self, user_id):
        self.calls.append("soft_delete")
        user = self.rows.get(user_id)
        if user is None or user.deleted_at is not None:
            return 0
        user.deleted_at = utcnow()
        self.writes += 1
        return 1

    async def restore(self, user_id):
        self.calls.append("restore")
        user = self.rows.get(user_id)
        if user is None or user.deleted_at is None:
            return 0
        user.deleted_at = None
        self.writes += 1
        return 1


class InMemoryCacheStore:
    """Cache store over a dict. TTLs are recorded, not enforced."""

    def __init__(self):
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.deleted: list[str] = []

    async def get(self, key):
        value = self.data.get(key)
        return copy.deepcopy(value)

    async def set(self, key, value, ttl_ms):
        self.data[key] = copy.deepcopy(value)
        self.ttls[key] = ttl_ms
        return True

    async def delete(self, key):
        self.deleted.append(key)
        self.data.pop(key, None)
        self.ttls.pop(key, None)
        return True


# ==================== Service Fixtures ====================

@pytest.fixture
def cache_settings():
    return CacheSettings(ttl_ms=300_000, all_users_key="all_users", user_key_prefix="user_")


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture
def service(record_store, cache_store, cache_settings):
    """UserService over in-memory fakes."""
    return UserService(record_store, cache_store, cache_settings)


# ==================== Database Fixtures ====================

@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """Fresh SQLite database per test, installed as db.async_session."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    test_session_maker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    original_session = app_db.async_session
    app_db.async_session = test_session_maker

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    app_db.async_session = original_session
    await engine.dispose()


@pytest.fixture
def sql_store():
    return SqlUserStore()


@pytest_asyncio.fixture(scope="function")
async def client(test_db_engine, cache_store, cache_settings):
    """HTTP client; the service runs on the test database and an in-memory cache."""
    api_service = UserService(SqlUserStore(), cache_store, cache_settings)
    app.dependency_overrides[get_user_service] = lambda: api_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def sample_user():
    return {"name": "Test User", "email": "test@example.com"}
