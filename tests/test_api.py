import uuid

import pytest

from app.core.security import Principal, decode_access_token
from app.models import PersonStatus
from factories import add_permission, add_person, add_role, bearer

ROOT = Principal(id=uuid.uuid4(), is_super_admin=True)


@pytest.mark.asyncio
async def test_login_issues_token_with_effective_bits(db, client):
    read = await add_permission(db, "roles.read", 1)
    share = await add_permission(db, "docs.share", 2**60)
    role = await add_role(db, "EDITOR", [read, share])
    person = await add_person(db, "editor@example.com", [role])

    response = await client.post(
        "/api/auth/login", json={"email": "editor@example.com", "password": "correct-horse"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["permission_bits"] == str(2**60 + 1)
    assert body["roles"] == ["EDITOR"]
    claims = decode_access_token(body["access_token"])
    assert claims["sub"] == str(person.id)
    assert claims["permission_bits"] == str(2**60 + 1)
    assert claims["is_super_admin"] is False

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    assert (await client.get("/api/roles", headers=headers)).status_code == 200
    me = await client.get("/api/auth/me", headers=headers)
    assert me.json()["permission_bits"] == str(2**60 + 1)


@pytest.mark.asyncio
async def test_login_flags_super_admin(db, client):
    root = await add_role(db, "SUPER_ADMIN", is_system=True)
    await add_person(db, "root@example.com", [root])

    response = await client.post(
        "/api/auth/login", json={"email": "root@example.com", "password": "correct-horse"}
    )
    assert response.json()["is_super_admin"] is True


@pytest.mark.asyncio
async def test_login_failures(db, client):
    await add_person(db, "off@example.com", status=PersonStatus.DISABLED)

    wrong = await client.post(
        "/api/auth/login", json={"email": "off@example.com", "password": "nope"}
    )
    disabled = await client.post(
        "/api/auth/login", json={"email": "off@example.com", "password": "correct-horse"}
    )

    assert wrong.status_code == 401
    assert disabled.status_code == 403


@pytest.mark.asyncio
async def test_me_requires_token(client):
    assert (await client.get("/api/auth/me")).status_code == 401


@pytest.mark.asyncio
async def test_role_management_flow(db, client):
    await add_permission(db, "docs.read", 1)
    await add_permission(db, "docs.write", 2)
    person = await add_person(db, "p@example.com")
    headers = bearer(ROOT)

    created = await client.post(
        "/api/roles",
        json={"name": "EDITOR", "permission_codes": ["docs.read"]},
        headers=headers,
    )
    assert created.status_code == 201
    role = created.json()
    assert [p["code"] for p in role["permissions"]] == ["docs.read"]
    assert role["permissions"][0]["bitfield"] == "1"

    toggled = await client.post(
        f"/api/roles/{role['id']}/permissions",
        json={"permission_code": "docs.write", "enabled": True},
        headers=headers,
    )
    assert [p["code"] for p in toggled.json()["permissions"]] == ["docs.read", "docs.write"]

    assigned = await client.post(
        f"/api/roles/{role['id']}/members", json={"person_id": str(person.id)}, headers=headers
    )
    assert assigned.status_code == 201
    assert [r["name"] for r in assigned.json()["roles"]] == ["EDITOR"]

    again = await client.post(
        f"/api/roles/{role['id']}/members", json={"person_id": str(person.id)}, headers=headers
    )
    assert again.status_code == 409

    members = await client.get(f"/api/roles/{role['id']}/members", headers=headers)
    assert [m["email"] for m in members.json()] == ["p@example.com"]

    removed = await client.delete(f"/api/roles/{role['id']}/members/{person.id}", headers=headers)
    assert removed.json()["roles"] == []

    deleted = await client.delete(f"/api/roles/{role['id']}", headers=headers)
    assert deleted.status_code == 200
    missing = await client.get(f"/api/roles/{role['id']}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_system_role_is_read_only_over_http(db, client):
    root = await add_role(db, "SUPER_ADMIN", is_system=True)

    response = await client.patch(
        f"/api/roles/{root.id}", json={"name": "ROOT"}, headers=bearer(ROOT)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Cannot modify system roles"


@pytest.mark.asyncio
async def test_sync_endpoint_discovers_app_routes(db, client):
    await add_role(db, "SUPER_ADMIN", is_system=True)
    headers = bearer(ROOT)

    response = await client.post("/api/permissions/sync", headers=headers)

    assert response.status_code == 200
    inserted = response.json()["inserted"]
    assert {"roles.read", "roles.update", "permissions.sync", "persons.read"} <= set(inserted)
    assert sorted(response.json()["granted"]) == sorted(inserted)

    listing = await client.get("/api/permissions", headers=headers)
    categories = {c["name"]: c["permissions"] for c in listing.json()}
    bits = sorted(int(p["bitfield"]) for perms in categories.values() for p in perms)
    assert bits == [2**i for i in range(len(inserted))]

    dashboard = await client.get("/api/permissions/dashboard", headers=headers)
    assert dashboard.json()["stats"]["total_permissions"] == len(inserted)

    audit = await client.get("/api/permissions/audit", headers=headers)
    assert audit.json()["unused_permissions"] == []


@pytest.mark.asyncio
async def test_create_permission_over_http(client):
    response = await client.post(
        "/api/permissions", json={"code": "exports.run"}, headers=bearer(ROOT)
    )
    assert response.status_code == 201
    assert response.json()["bitfield"] == "1"
    assert response.json()["category"] == "Exports"


@pytest.mark.asyncio
async def test_person_endpoints(client):
    headers = bearer(ROOT)

    created = await client.post(
        "/api/persons",
        json={"email": "new@example.com", "full_name": "New Person", "password": "long-enough"},
        headers=headers,
    )
    assert created.status_code == 201
    person_id = created.json()["id"]

    duplicate = await client.post(
        "/api/persons",
        json={"email": "new@example.com", "full_name": "Again", "password": "long-enough"},
        headers=headers,
    )
    assert duplicate.status_code == 409

    disabled = await client.post(f"/api/persons/{person_id}/disable", headers=headers)
    assert disabled.status_code == 200

    listing = await client.get("/api/persons", headers=headers)
    assert [(p["email"], p["status"]) for p in listing.json()] == [("new@example.com", "DISABLED")]

    login = await client.post(
        "/api/auth/login", json={"email": "new@example.com", "password": "long-enough"}
    )
    assert login.status_code == 403
