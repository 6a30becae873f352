"""
Permission controller — registry browsing, dashboard, audit & sync.

Permissions themselves are discovered from route declarations; the
only write routes here are a manual `create` and an on-demand `sync`.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.rbac.cache import PermissionCache, RbacCache, get_permission_cache, get_rbac_cache
from app.rbac.dependencies import require_route
from app.rbac.discovery import sync_permissions
from app.schemas import (
    AuditOut,
    CreatePermissionRequest,
    DashboardOut,
    PermissionCategoryOut,
    PermissionOut,
    SyncResultOut,
)
from app.services import permission_service

router = APIRouter(prefix="/api/permissions", tags=["Permissions"])


@router.get(
    "",
    response_model=list[PermissionCategoryOut],
    dependencies=[Depends(require_route("permissions.list", "permissions.read"))],
)
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    include_deprecated: bool = Query(False),
):
    """Permissions grouped by category."""
    categories = await permission_service.get_permission_categories(db, include_deprecated)
    return [PermissionCategoryOut.model_validate(c) for c in categories]


@router.post(
    "",
    response_model=PermissionOut,
    status_code=201,
    dependencies=[Depends(require_route("permissions.create", "permissions.create"))],
)
async def create_permission(
    body: CreatePermissionRequest,
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCache = Depends(get_permission_cache),
):
    permission = await permission_service.create_permission(
        body.code,
        db,
        permission_cache,
        name=body.name,
        description=body.description,
    )
    return PermissionOut.model_validate(permission)


@router.get(
    "/dashboard",
    response_model=DashboardOut,
    dependencies=[Depends(require_route("permissions.dashboard", "permissions.read"))],
)
async def permission_dashboard(db: AsyncSession = Depends(get_db)):
    data = await permission_service.get_permission_dashboard(db)
    return DashboardOut.model_validate(data, from_attributes=True)


@router.get(
    "/audit",
    response_model=AuditOut,
    dependencies=[Depends(require_route("permissions.audit", "permissions.audit"))],
)
async def permission_audit(db: AsyncSession = Depends(get_db)):
    return await permission_service.get_permission_audit(db)


@router.post(
    "/sync",
    response_model=SyncResultOut,
    dependencies=[Depends(require_route("permissions.sync", "permissions.sync"))],
)
async def sync(
    db: AsyncSession = Depends(get_db),
    permission_cache: PermissionCache = Depends(get_permission_cache),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    """Re-run discovery against the declared routes."""
    result = await sync_permissions(db, permission_cache=permission_cache, rbac_cache=rbac_cache)
    return SyncResultOut.model_validate(result)
