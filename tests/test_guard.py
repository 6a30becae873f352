import logging
import uuid

import pytest

from app.core.cache import CacheError, MemoryCacheBackend, get_cache
from app.core.config import settings
from app.core.security import Principal
from app.main import app as fastapi_app
from app.rbac import dependencies
from app.rbac.dependencies import require_permission
from factories import add_permission, add_person, bearer


class DownBackend(MemoryCacheBackend):
    async def get(self, key):
        raise CacheError("connection refused")


def principal(bits: int = 0, *, super_admin: bool = False) -> Principal:
    return Principal(id=uuid.uuid4(), permission_bits=bits, is_super_admin=super_admin)


@pytest.mark.asyncio
async def test_no_codes_allows_anonymous():
    guard = require_permission()
    assert await guard(None, None, None, None) is None


@pytest.mark.asyncio
async def test_public_routes_need_no_token(client):
    response = await client.get("/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_anonymous_is_401(client):
    response = await client.get("/api/roles")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


@pytest.mark.asyncio
async def test_bad_token_is_401(client):
    response = await client.get("/api/roles", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_bit_is_403(db, client):
    await add_permission(db, "roles.read", 2)

    response = await client.get("/api/roles", headers=bearer(principal(1)))

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_matching_bit_is_allowed(db, client):
    await add_permission(db, "roles.read", 2**60)

    response = await client.get("/api/roles", headers=bearer(principal(2**60 | 1)))

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_unregistered_code_is_denied_even_with_every_bit(client):
    response = await client.get("/api/roles", headers=bearer(principal(2**128 - 1)))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_bypasses_bit_checks(client, monkeypatch):
    def no_bit_math(*args, **kwargs):
        raise AssertionError("bit arithmetic on the super-admin path")

    monkeypatch.setattr(dependencies, "has_bit", no_bit_math)

    # No permission rows at all: codes created later are covered too.
    response = await client.get("/api/roles", headers=bearer(principal(0, super_admin=True)))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_multiple_codes_are_conjunctive(db, client):
    await add_permission(db, "persons.read", 1)
    await add_permission(db, "roles.read", 2)
    person = await add_person(db, "p@example.com")
    url = f"/api/persons/{person.id}/roles"

    only_one = await client.get(url, headers=bearer(principal(1)))
    both = await client.get(url, headers=bearer(principal(3)))

    assert only_one.status_code == 403
    assert both.status_code == 200
    assert both.json() == {"person_id": str(person.id), "roles": []}


@pytest.mark.asyncio
async def test_cache_failure_fails_closed(client, caplog):
    fastapi_app.dependency_overrides[get_cache] = lambda: DownBackend()

    response = await client.get("/api/roles", headers=bearer(principal(1)))

    assert response.status_code == 503
    assert "roles.list" in caplog.text


@pytest.mark.asyncio
async def test_debug_logs_per_code_result(db, client, caplog, monkeypatch):
    await add_permission(db, "roles.read", 1)
    monkeypatch.setattr(settings, "DEBUG", True)

    with caplog.at_level(logging.DEBUG, logger="rbac"):
        await client.get("/api/roles", headers=bearer(principal(1)))

    assert "roles.list" in caplog.text
    assert "'roles.read': True" in caplog.text
