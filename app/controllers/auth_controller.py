"""
Auth controller — login & current principal.

Login is PUBLIC (no permission dependency).  `/me` only needs a valid
token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Principal, require_principal
from app.rbac.cache import RbacCache, get_rbac_cache
from app.schemas import LoginRequest, PrincipalOut, TokenResponse
from app.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    rbac_cache: RbacCache = Depends(get_rbac_cache),
):
    """Authenticate with email + password → receive a bearer token."""
    return await auth_service.authenticate_person(
        body.email, body.password, db=db, rbac_cache=rbac_cache,
    )


@router.get("/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(require_principal)):
    return PrincipalOut(
        id=principal.id,
        email=principal.email,
        permission_bits=principal.permission_bits,
        is_super_admin=principal.is_super_admin,
    )
