"""Shared pytest fixtures for the RBAC engine tests."""

import os

# Settings are read at import time; point everything at throwaway
# backends before any app module loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("SYNC_PERMISSIONS_ON_STARTUP", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.cache import MemoryCacheBackend, get_cache
from app.core.database import get_db
from app.main import app as fastapi_app
from app.models import Base
from app.rbac.cache import PermissionCache, RbacCache


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture()
async def db() -> AsyncIterator[AsyncSession]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache_backend(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(clock=clock)


@pytest.fixture()
def permission_cache(cache_backend: MemoryCacheBackend) -> PermissionCache:
    return PermissionCache(cache_backend, ttl_seconds=300)


@pytest.fixture()
def rbac_cache(cache_backend: MemoryCacheBackend) -> RbacCache:
    return RbacCache(cache_backend, ttl_seconds=300)


@pytest_asyncio.fixture()
async def client(db: AsyncSession, cache_backend: MemoryCacheBackend) -> AsyncIterator[AsyncClient]:
    """HTTPX client bound to the app, sharing the test session and cache."""

    async def _get_db() -> AsyncIterator[AsyncSession]:
        yield db

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_cache] = lambda: cache_backend

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http

    fastapi_app.dependency_overrides.clear()
