import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.models import Role, person_roles
from app.services import person_role_service, role_service
from factories import add_permission, add_person, add_role


async def _order(db) -> list[str]:
    return [r.name for r in await role_service.get_roles(db)]


@pytest.mark.asyncio
async def test_create_role_grants_only_live_known_codes(db):
    await add_permission(db, "docs.read", 1)
    await add_permission(db, "docs.legacy", 2, is_deprecated=True)
    await add_role(db, "FIRST")

    role = await role_service.create_role(
        "EDITOR",
        db,
        description="Edits docs",
        permission_codes=["docs.read", "docs.legacy", "docs.unknown"],
    )

    assert [p.code for p in role.permissions] == ["docs.read"]
    assert role.sort_order == 1
    assert role.is_system is False


@pytest.mark.asyncio
async def test_duplicate_role_name_conflicts(db):
    await add_role(db, "EDITOR")
    with pytest.raises(HTTPException) as exc:
        await role_service.create_role("EDITOR", db)
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_system_roles_are_protected(db, rbac_cache):
    await add_permission(db, "docs.read", 1)
    root = await add_role(db, "SUPER_ADMIN", is_system=True)

    for call in (
        role_service.update_role(root.id, db, rbac_cache, name="ROOT"),
        role_service.delete_role(root.id, db, rbac_cache),
        role_service.toggle_role_permission(root.id, "docs.read", False, db, rbac_cache),
    ):
        with pytest.raises(HTTPException) as exc:
            await call
        assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_missing_role_or_permission_is_404(db, rbac_cache):
    role = await add_role(db, "EDITOR")

    with pytest.raises(HTTPException) as exc:
        await role_service.get_role_with_permissions(uuid.uuid4(), db)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        await role_service.toggle_role_permission(role.id, "docs.nothing", True, db, rbac_cache)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_update_role_rename_conflict(db, rbac_cache):
    await add_role(db, "EDITOR")
    viewer = await add_role(db, "VIEWER", sort_order=1)

    with pytest.raises(HTTPException) as exc:
        await role_service.update_role(viewer.id, db, rbac_cache, name="EDITOR")
    assert exc.value.status_code == 409

    updated = await role_service.update_role(viewer.id, db, rbac_cache, name="READER", description="x")
    assert (updated.name, updated.description) == ("READER", "x")


@pytest.mark.asyncio
async def test_toggle_is_idempotent(db, rbac_cache):
    await add_permission(db, "docs.read", 1)
    role = await add_role(db, "EDITOR")

    for _ in range(2):
        role = await role_service.toggle_role_permission(role.id, "docs.read", True, db, rbac_cache)
    assert [p.code for p in role.permissions] == ["docs.read"]

    for _ in range(2):
        role = await role_service.toggle_role_permission(role.id, "docs.read", False, db, rbac_cache)
    assert role.permissions == []


@pytest.mark.asyncio
async def test_deprecated_permission_cannot_be_granted(db, rbac_cache):
    legacy = await add_permission(db, "docs.legacy", 1, is_deprecated=True)
    fresh = await add_role(db, "EDITOR")
    role = await add_role(db, "LEGACY", [legacy], sort_order=1)

    with pytest.raises(HTTPException) as exc:
        await role_service.toggle_role_permission(fresh.id, "docs.legacy", True, db, rbac_cache)
    assert exc.value.status_code == 409

    # Grants made before deprecation can still be revoked.
    role = await role_service.toggle_role_permission(role.id, "docs.legacy", False, db, rbac_cache)
    assert role.permissions == []


@pytest.mark.asyncio
async def test_delete_role_clears_holders_and_renumbers(db, rbac_cache):
    first = await add_role(db, "A")
    doomed = await add_role(db, "B", sort_order=1)
    await add_role(db, "C", sort_order=2)
    person = await add_person(db, "p@example.com", [first, doomed])
    await rbac_cache.set_cached_person_permissions(person.id, 7)

    await role_service.delete_role(doomed.id, db, rbac_cache)

    assert await rbac_cache.get_cached_person_permissions(person.id) is None
    roles = await role_service.get_roles(db)
    assert [(r.name, r.sort_order) for r in roles] == [("A", 0), ("C", 1)]
    left = (await db.execute(select(person_roles.c.role_id))).scalars().all()
    assert left == [first.id]


@pytest.mark.asyncio
async def test_delete_role_and_renumber_commit_together(db, rbac_cache, monkeypatch):
    await add_role(db, "A")
    doomed = await add_role(db, "B", sort_order=1)
    await add_role(db, "C", sort_order=2)

    async def broken_get_roles(db):
        raise RuntimeError("renumber failed")

    monkeypatch.setattr(role_service, "get_roles", broken_get_roles)
    with pytest.raises(RuntimeError):
        await role_service.delete_role(doomed.id, db, rbac_cache)
    await db.rollback()

    rows = (await db.execute(select(Role.name, Role.sort_order).order_by(Role.sort_order))).all()
    assert [tuple(r) for r in rows] == [("A", 0), ("B", 1), ("C", 2)]


@pytest.mark.asyncio
async def test_update_role_position_keeps_order_contiguous(db):
    for index, name in enumerate("ABCD"):
        await add_role(db, name, sort_order=index * 10)
    d = (await db.execute(select(Role).where(Role.name == "D"))).scalar_one()

    roles = await role_service.update_role_position(d.id, 1, db)
    assert [(r.name, r.sort_order) for r in roles] == [("A", 0), ("D", 1), ("B", 2), ("C", 3)]

    roles = await role_service.update_role_position(d.id, 99, db)
    assert await _order(db) == ["A", "B", "C", "D"]
    assert [r.sort_order for r in roles] == [0, 1, 2, 3]

    with pytest.raises(HTTPException) as exc:
        await role_service.update_role_position(d.id, -1, db)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_assignment_errors(db, rbac_cache):
    role = await add_role(db, "EDITOR")
    person = await add_person(db, "p@example.com", [role])

    with pytest.raises(HTTPException) as exc:
        await person_role_service.assign_role(person.id, role.id, db=db, rbac_cache=rbac_cache)
    assert exc.value.status_code == 409

    with pytest.raises(HTTPException) as exc:
        await person_role_service.assign_role(uuid.uuid4(), role.id, db=db, rbac_cache=rbac_cache)
    assert exc.value.status_code == 404

    other = await add_role(db, "VIEWER", sort_order=1)
    with pytest.raises(HTTPException) as exc:
        await person_role_service.remove_role(person.id, other.id, db=db, rbac_cache=rbac_cache)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_role_members(db):
    role = await add_role(db, "EDITOR")
    await add_person(db, "b@example.com", [role])
    await add_person(db, "a@example.com", [role])
    await add_person(db, "c@example.com")

    members = await person_role_service.get_role_members(role.id, db)
    assert [m.email for m in members] == ["a@example.com", "b@example.com"]
