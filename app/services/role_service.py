"""
Role service — role CRUD, grants and ordering.

Rules enforced here (not in controllers):
- Role names are unique (409 on clash).
- System roles cannot be updated, deleted or have grants toggled (403).
- Deprecated permissions cannot be granted.
- `sort_order` stays contiguous (0..n-1) after every reorder.

Every write commits first, then clears the cached bits of every person
holding the role, so a read issued after the call returns is fresh.
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.permission import Permission
from app.models.role import Role, person_roles, role_permissions
from app.rbac.cache import RbacCache


async def get_roles(db: AsyncSession) -> list[Role]:
    stmt = (
        select(Role)
        .order_by(Role.sort_order, Role.name)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_role_with_permissions(role_id: uuid.UUID, db: AsyncSession) -> Role:
    stmt = select(Role).where(Role.id == role_id).execution_options(populate_existing=True)
    role = (await db.execute(stmt)).scalar_one_or_none()
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


async def _get_mutable_role(role_id: uuid.UUID, db: AsyncSession) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    if role.is_system:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot modify system roles")
    return role


async def _ensure_name_free(name: str, db: AsyncSession) -> None:
    existing = (await db.execute(select(Role.id).where(Role.name == name))).first()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role with this name already exists")


async def _next_role_position(db: AsyncSession) -> int:
    last = (await db.execute(select(func.max(Role.sort_order)))).scalar_one_or_none()
    return 0 if last is None else last + 1


async def create_role(
    name: str,
    db: AsyncSession,
    description: str | None = None,
    permission_codes: list[str] | None = None,
) -> Role:
    """Create a non-system role, optionally with initial grants.

    Unknown or deprecated codes in `permission_codes` are ignored.
    A brand-new role has no members, so no cache needs clearing.
    """
    await _ensure_name_free(name, db)

    role = Role(
        id=uuid.uuid4(),
        name=name,
        description=description,
        is_system=False,
        sort_order=await _next_role_position(db),
    )
    db.add(role)
    await db.flush()

    if permission_codes:
        stmt = select(Permission.id).where(
            Permission.code.in_(permission_codes),
            Permission.is_deprecated == False,  # noqa: E712
        )
        permission_ids = (await db.execute(stmt)).scalars().all()
        if permission_ids:
            await db.execute(
                insert(role_permissions),
                [{"role_id": role.id, "permission_id": pid} for pid in permission_ids],
            )

    await db.commit()
    return await get_role_with_permissions(role.id, db)


async def update_role(
    role_id: uuid.UUID,
    db: AsyncSession,
    rbac_cache: RbacCache,
    name: str | None = None,
    description: str | None = None,
) -> Role:
    role = await _get_mutable_role(role_id, db)

    if name is not None and name != role.name:
        await _ensure_name_free(name, db)
        role.name = name
    if description is not None:
        role.description = description

    await db.commit()
    await rbac_cache.clear_permission_cache(role_id, db)
    return await get_role_with_permissions(role_id, db)


async def delete_role(role_id: uuid.UUID, db: AsyncSession, rbac_cache: RbacCache) -> None:
    role = await _get_mutable_role(role_id, db)

    # Holders must be collected before the assignment rows disappear.
    stmt = select(person_roles.c.person_id).where(person_roles.c.role_id == role_id)
    holder_ids = list((await db.execute(stmt)).scalars().all())

    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    await db.execute(delete(person_roles).where(person_roles.c.role_id == role_id))
    await db.execute(delete(Role).where(Role.id == role.id))
    await _renumber_roles(db)
    await db.commit()

    for person_id in holder_ids:
        await rbac_cache.clear_person_permission_cache(person_id)


async def toggle_role_permission(
    role_id: uuid.UUID,
    permission_code: str,
    enabled: bool,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> Role:
    """Grant (`enabled=True`) or revoke one permission.  Idempotent."""
    await _get_mutable_role(role_id, db)

    permission = (
        await db.execute(select(Permission).where(Permission.code == permission_code))
    ).scalar_one_or_none()
    if permission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not found")

    granted = (
        await db.execute(
            select(role_permissions.c.permission_id).where(
                role_permissions.c.role_id == role_id,
                role_permissions.c.permission_id == permission.id,
            )
        )
    ).first() is not None

    if enabled and not granted:
        if permission.is_deprecated:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Deprecated permissions cannot be granted",
            )
        await db.execute(
            insert(role_permissions).values(role_id=role_id, permission_id=permission.id)
        )
    elif not enabled and granted:
        await db.execute(
            delete(role_permissions).where(
                role_permissions.c.role_id == role_id,
                role_permissions.c.permission_id == permission.id,
            )
        )

    await db.commit()
    # Clear cache for every person holding this role
    await rbac_cache.clear_permission_cache(role_id, db)
    return await get_role_with_permissions(role_id, db)


async def update_role_position(role_id: uuid.UUID, new_position: int, db: AsyncSession) -> list[Role]:
    """Move one role to `new_position`; every role is renumbered 0..n-1."""
    roles = await get_roles(db)
    moving = next((r for r in roles if r.id == role_id), None)
    if moving is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    if new_position < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Position must be >= 0")

    others = [r for r in roles if r.id != role_id]
    others.insert(min(new_position, len(others)), moving)
    for index, role in enumerate(others):
        role.sort_order = index

    await db.commit()
    return await get_roles(db)


async def _renumber_roles(db: AsyncSession) -> None:
    roles = await get_roles(db)
    for index, role in enumerate(roles):
        role.sort_order = index
