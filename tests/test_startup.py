from contextlib import asynccontextmanager

import pytest
from sqlalchemy import func, select

import app.main as app_main
from app.core.config import settings
from app.models import Permission, Role
from app.rbac import discovery
from app.rbac.routes import RoutePermissionRegistry
from factories import add_permission, add_person, add_role


@pytest.fixture()
def startup(db, cache_backend, monkeypatch):
    """Point the startup hook at the test session and cache."""

    @asynccontextmanager
    async def session_local():
        yield db

    monkeypatch.setattr(app_main, "SessionLocal", session_local)
    monkeypatch.setattr(app_main, "get_cache", lambda: cache_backend)
    monkeypatch.setattr(settings, "SYNC_PERMISSIONS_ON_STARTUP", True)
    return app_main.bootstrap_permissions


@pytest.mark.asyncio
async def test_startup_sync_drops_deprecated_codes_from_cache(
    db, startup, permission_cache, rbac_cache, cache_backend
):
    legacy = RoutePermissionRegistry()
    legacy.declare("legacy.export", ["legacy.export"])
    await discovery.sync_permissions(db, legacy)
    await permission_cache.initialize(db)
    assert await cache_backend.get("permission:bitfields:legacy.export") == "1"

    permission = (
        await db.execute(select(Permission).where(Permission.code == "legacy.export"))
    ).scalar_one()
    exporter = await add_role(db, "EXPORTER", [permission])
    person = await add_person(db, "exporter@example.com", [exporter])
    await rbac_cache.set_cached_person_permissions(person.id, 1)

    # The app's own routes no longer declare legacy.export.
    await startup()

    await db.refresh(permission)
    assert permission.is_deprecated
    assert await cache_backend.get("permission:bitfields:legacy.export") is None
    assert await permission_cache.get_permission_bitfields(["legacy.export"], db) == [None]
    assert await rbac_cache.get_cached_person_permissions(person.id) is None
    assert await cache_backend.get("permission:bitfields:roles.read") is not None


@pytest.mark.asyncio
async def test_startup_sync_failure_is_logged_and_cache_still_warms(
    db, startup, cache_backend, monkeypatch, caplog
):
    await add_permission(db, "reports.view", 1)

    async def broken_sync(*args, **kwargs):
        raise RuntimeError("registry unavailable")

    monkeypatch.setattr(discovery, "sync_permissions", broken_sync)

    await startup()

    assert "Permission sync failed at startup" in caplog.text
    assert await cache_backend.get("permission:bitfields:reports.view") == "1"
    # Seeding is skipped along with the failed sync.
    assert await db.scalar(select(func.count()).select_from(Role)) == 0
