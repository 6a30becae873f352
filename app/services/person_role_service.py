"""
Person ↔ role service and the effective-permission calculator.

Handles:
- Assigning / removing roles (each write clears the person's cached
  bits before returning)
- Computing a person's effective bitfield (cache-first)
- Point checks: `has_permission`, `has_role`, `is_super_admin`

The effective bitfield is the OR of every live permission bit granted
through any of the person's roles.  Deprecated permissions contribute
nothing even if the grant row still exists.
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.person import Person
from app.models.role import Role, person_roles
from app.rbac.bitfield import combine_bitfields, has_bit, parse_bits
from app.rbac.cache import PermissionCache, RbacCache


async def _load_person(person_id: uuid.UUID, db: AsyncSession) -> Person | None:
    stmt = (
        select(Person)
        .options(selectinload(Person.roles).selectinload(Role.permissions))
        .where(Person.id == person_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _get_role_or_404(role_id: uuid.UUID, db: AsyncSession) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


async def get_person_roles(person_id: uuid.UUID, db: AsyncSession) -> Person:
    """Person with roles → permissions eagerly loaded."""
    person = await _load_person(person_id, db)
    if person is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
    return person


async def get_role_members(role_id: uuid.UUID, db: AsyncSession) -> list[Person]:
    await _get_role_or_404(role_id, db)
    stmt = (
        select(Person)
        .join(person_roles, person_roles.c.person_id == Person.id)
        .where(person_roles.c.role_id == role_id)
        .order_by(Person.email)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def assign_role(
    person_id: uuid.UUID,
    role_id: uuid.UUID,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> Person:
    await _get_role_or_404(role_id, db)
    if await db.get(Person, person_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")

    held = await db.execute(
        select(person_roles.c.role_id).where(
            person_roles.c.person_id == person_id,
            person_roles.c.role_id == role_id,
        )
    )
    if held.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role already assigned")

    await db.execute(insert(person_roles).values(person_id=person_id, role_id=role_id))
    await db.commit()

    await rbac_cache.clear_person_permission_cache(person_id)
    return await get_person_roles(person_id, db)


async def remove_role(
    person_id: uuid.UUID,
    role_id: uuid.UUID,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> Person:
    result = await db.execute(
        delete(person_roles).where(
            person_roles.c.person_id == person_id,
            person_roles.c.role_id == role_id,
        )
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role assignment not found")
    await db.commit()

    await rbac_cache.clear_person_permission_cache(person_id)
    return await get_person_roles(person_id, db)


# ── Effective permissions ────────────────────────────────────────────


async def calculate_effective_permissions(
    person_id: uuid.UUID,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> int:
    """
    OR of every live bit granted to the person.

    A cached value is returned without touching the database.  Unknown
    persons and persons without roles get 0.
    """
    cached = await rbac_cache.get_cached_person_permissions(person_id)
    if cached is not None:
        return cached

    person = await _load_person(person_id, db)
    if person is None:
        return 0

    bits = combine_bitfields(
        permission.bitfield
        for role in person.roles
        for permission in role.permissions
        if not permission.is_deprecated
    )

    await rbac_cache.set_cached_person_permissions(person_id, bits)
    return bits


async def has_permission(
    person_id: uuid.UUID,
    code: str,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
    permission_cache: PermissionCache,
) -> bool:
    [bitfield] = await permission_cache.get_permission_bitfields([code], db)
    if bitfield is None:
        return False

    effective = await calculate_effective_permissions(person_id, db=db, rbac_cache=rbac_cache)
    return has_bit(effective, parse_bits(bitfield))


async def has_role(person_id: uuid.UUID, role_name: str, *, db: AsyncSession) -> bool:
    stmt = (
        select(Role.id)
        .join(person_roles, person_roles.c.role_id == Role.id)
        .where(person_roles.c.person_id == person_id, Role.name == role_name)
    )
    result = await db.execute(stmt)
    return result.first() is not None


async def is_super_admin(person_id: uuid.UUID, *, db: AsyncSession) -> bool:
    return await has_role(person_id, settings.SUPER_ADMIN_ROLE, db=db)
