"""
Person service — CRUD & query helpers.
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password
from app.models.person import Person, PersonStatus
from app.rbac.cache import RbacCache


async def get_person_by_id(person_id: uuid.UUID, db: AsyncSession) -> Person:
    person = await db.get(Person, person_id)
    if person is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
    return person


async def get_person_by_email(email: str, db: AsyncSession) -> Person | None:
    result = await db.execute(select(Person).where(Person.email == email))
    return result.scalar_one_or_none()


async def list_persons(db: AsyncSession, skip: int = 0, limit: int = 50) -> list[Person]:
    stmt = select(Person).order_by(Person.email).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_person(
    email: str,
    full_name: str,
    password: str,
    db: AsyncSession,
) -> Person:
    if await get_person_by_email(email, db) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    person = Person(
        id=uuid.uuid4(),
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        status=PersonStatus.ACTIVE,
    )
    db.add(person)
    await db.commit()
    return await get_person_by_id(person.id, db)


async def disable_person(person_id: uuid.UUID, db: AsyncSession, rbac_cache: RbacCache) -> Person:
    """Admin action — disable an account.  Existing tokens expire on their own."""
    person = await get_person_by_id(person_id, db)
    person.status = PersonStatus.DISABLED
    await db.commit()
    await rbac_cache.clear_person_permission_cache(person_id)
    return person
