"""
Person controller — person management and role lookups per person.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.cache import RbacCache, get_rbac_cache
from app.rbac.dependencies import require_route
from app.schemas import (
    CreatePersonRequest,
    MessageResponse,
    PersonOut,
    PersonRolesOut,
    RoleOut,
)
from app.services import person_role_service, person_service

router = APIRouter(prefix="/api/persons", tags=["Persons"])


def _person_out(person) -> PersonOut:
    return PersonOut(
        id=person.id,
        email=person.email,
        full_name=person.full_name,
        status=person.status.value,
        created_at=person.created_at,
    )


@router.get(
    "",
    response_model=list[PersonOut],
    dependencies=[Depends(require_route("persons.list", "persons.read"))],
)
async def list_persons(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    persons = await person_service.list_persons(db, skip, limit)
    return [_person_out(p) for p in persons]


@router.post(
    "",
    response_model=PersonOut,
    status_code=201,
    dependencies=[Depends(require_route("persons.create", "persons.create"))],
)
async def create_person(body: CreatePersonRequest, db: AsyncSession = Depends(get_db)):
    person = await person_service.create_person(body.email, body.full_name, body.password, db)
    return _person_out(person)


@router.get(
    "/{person_id}/roles",
    response_model=PersonRolesOut,
    dependencies=[Depends(require_route("persons.roles", "persons.read", "roles.read"))],
)
async def get_person_roles(person_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    person = await person_role_service.get_person_roles(person_id, db)
    return PersonRolesOut(
        person_id=person.id,
        roles=[RoleOut.model_validate(r) for r in person.roles],
    )


@router.post(
    "/{person_id}/disable",
    response_model=MessageResponse,
    dependencies=[Depends(require_route("persons.disable", "persons.disable"))],
)
async def disable_person(
    person_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    await person_service.disable_person(person_id, db, rbac_cache)
    return MessageResponse(detail="Person disabled successfully")
