"""
Authentication service.

Handles:
- Login (email + password → access token)
- Token payload construction: the person's effective permission
  bitfield is computed once here and travels in the token, so the
  permission guard does no role lookups per request.

All business logic lives here — controllers call service methods
and return the result.
"""

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import Principal, create_access_token, verify_password
from app.models.person import Person, PersonStatus
from app.rbac.cache import RbacCache
from app.services.person_role_service import calculate_effective_permissions


async def build_principal(person: Person, *, db: AsyncSession, rbac_cache: RbacCache) -> Principal:
    bits = await calculate_effective_permissions(person.id, db=db, rbac_cache=rbac_cache)
    return Principal(
        id=person.id,
        permission_bits=bits,
        is_super_admin=any(r.name == settings.SUPER_ADMIN_ROLE for r in person.roles),
        email=person.email,
    )


async def authenticate_person(
    email: str,
    password: str,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> dict:
    """Validate credentials and return a bearer token with the person's bits."""
    stmt = select(Person).where(Person.email == email).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    person = result.scalar_one_or_none()

    if person is None or not verify_password(password, person.password_hash or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if person.status == PersonStatus.DISABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    principal = await build_principal(person, db=db, rbac_cache=rbac_cache)

    return {
        "access_token": create_access_token(principal.to_claims()),
        "token_type": "bearer",
        "person_id": str(person.id),
        "roles": [r.name for r in person.roles],
        "permission_bits": str(principal.permission_bits),
        "is_super_admin": principal.is_super_admin,
    }
