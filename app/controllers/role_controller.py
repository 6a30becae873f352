"""
Role controller — role CRUD, permission toggles, ordering & assignments.

Every route declares its required codes through `require_route`, which
both enforces them and registers them for permission discovery.
Controllers are THIN — they delegate to services and return schemas.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.cache import RbacCache, get_rbac_cache
from app.rbac.dependencies import require_route
from app.schemas import (
    AssignRoleRequest,
    CreateRoleRequest,
    MessageResponse,
    PersonOut,
    PersonRolesOut,
    RoleOut,
    RolePositionRequest,
    TogglePermissionRequest,
    UpdateRoleRequest,
)
from app.services import person_role_service, role_service

router = APIRouter(prefix="/api/roles", tags=["Roles"])


@router.get(
    "",
    response_model=list[RoleOut],
    dependencies=[Depends(require_route("roles.list", "roles.read"))],
)
async def list_roles(db: AsyncSession = Depends(get_db)):
    roles = await role_service.get_roles(db)
    return [RoleOut.model_validate(r) for r in roles]


@router.post(
    "",
    response_model=RoleOut,
    status_code=201,
    dependencies=[Depends(require_route("roles.create", "roles.create"))],
)
async def create_role(body: CreateRoleRequest, db: AsyncSession = Depends(get_db)):
    role = await role_service.create_role(
        name=body.name,
        db=db,
        description=body.description,
        permission_codes=body.permission_codes,
    )
    return RoleOut.model_validate(role)


@router.get(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_route("roles.get", "roles.read"))],
)
async def get_role(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    role = await role_service.get_role_with_permissions(role_id, db)
    return RoleOut.model_validate(role)


@router.patch(
    "/{role_id}",
    response_model=RoleOut,
    dependencies=[Depends(require_route("roles.update", "roles.update"))],
)
async def update_role(
    role_id: uuid.UUID,
    body: UpdateRoleRequest,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    role = await role_service.update_role(
        role_id,
        db,
        rbac_cache,
        name=body.name,
        description=body.description,
    )
    return RoleOut.model_validate(role)


@router.delete(
    "/{role_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_route("roles.delete", "roles.delete"))],
)
async def delete_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    await role_service.delete_role(role_id, db, rbac_cache)
    return MessageResponse(detail="Role deleted successfully")


@router.post(
    "/{role_id}/permissions",
    response_model=RoleOut,
    dependencies=[Depends(require_route("roles.toggle_permission", "roles.update"))],
)
async def toggle_role_permission(
    role_id: uuid.UUID,
    body: TogglePermissionRequest,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    """Grant or revoke a single permission on a role."""
    role = await role_service.toggle_role_permission(
        role_id, body.permission_code, body.enabled, db, rbac_cache
    )
    return RoleOut.model_validate(role)


@router.put(
    "/{role_id}/position",
    response_model=list[RoleOut],
    dependencies=[Depends(require_route("roles.position", "roles.update"))],
)
async def update_role_position(
    role_id: uuid.UUID,
    body: RolePositionRequest,
    db: AsyncSession = Depends(get_db),
):
    roles = await role_service.update_role_position(role_id, body.position, db)
    return [RoleOut.model_validate(r) for r in roles]


# ── Assignments ──────────────────────────────────────────────────────
@router.get(
    "/{role_id}/members",
    response_model=list[PersonOut],
    dependencies=[Depends(require_route("roles.members", "roles.read"))],
)
async def list_role_members(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    persons = await person_role_service.get_role_members(role_id, db)
    return [
        PersonOut(
            id=p.id,
            email=p.email,
            full_name=p.full_name,
            status=p.status.value,
            created_at=p.created_at,
        )
        for p in persons
    ]


@router.post(
    "/{role_id}/members",
    response_model=PersonRolesOut,
    status_code=201,
    dependencies=[Depends(require_route("roles.assign", "roles.assign"))],
)
async def assign_role(
    role_id: uuid.UUID,
    body: AssignRoleRequest,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    person = await person_role_service.assign_role(
        body.person_id, role_id, db=db, rbac_cache=rbac_cache
    )
    return PersonRolesOut(
        person_id=person.id,
        roles=[RoleOut.model_validate(r) for r in person.roles],
    )


@router.delete(
    "/{role_id}/members/{person_id}",
    response_model=PersonRolesOut,
    dependencies=[Depends(require_route("roles.unassign", "roles.assign"))],
)
async def remove_role(
    role_id: uuid.UUID,
    person_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    person = await person_role_service.remove_role(
        person_id, role_id, db=db, rbac_cache=rbac_cache
    )
    return PersonRolesOut(
        person_id=person.id,
        roles=[RoleOut.model_validate(r) for r in person.roles],
    )
