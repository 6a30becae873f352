"""
RBAC dependencies — the heart of permission enforcement.

`require_permission` is a *dependency factory*: call it with one or
more permission codes and it returns a FastAPI dependency that will:

1. Take the principal from the bearer token (no token → 401).
2. Let super admins straight through.
3. Resolve every required code to its bitfield via `PermissionCache`
   (read-through to the registry on a miss).
4. AND each bitfield against the principal's token bits.
5. Return 403 on failure — with NO details about which permission
   failed (prevents enumeration attacks).

No roles are loaded per request: the token already carries the OR of
every bit the person held at login.

Usage in a route:
    @router.get(
        "/roles",
        dependencies=[Depends(require_route("roles.list", "roles.read"))],
    )
    async def list_roles(...): ...

`require_route` additionally records the declaration in the route
registry so permission discovery knows the code exists.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheError
from app.core.config import settings
from app.core.database import get_db
from app.core.security import Principal, get_current_principal
from app.rbac.bitfield import has_bit, parse_bits
from app.rbac.cache import PermissionCache, get_permission_cache
from app.rbac.routes import RoutePermissionRegistry, route_permissions

logger = logging.getLogger("rbac")


class require_permission:
    """
    Dependency factory.  Codes are conjunctive.

    Can be used as:
        Depends(require_permission("roles.read"))
        Depends(require_permission("roles.read", "roles.update"))
    """

    def __init__(self, *permission_codes: str, handler: str | None = None):
        # Order kept for logging; duplicates dropped.
        self.required_codes = tuple(dict.fromkeys(permission_codes))
        self.handler = handler

    def _handler_name(self, request: Request) -> str:
        if self.handler:
            return self.handler
        endpoint = request.scope.get("endpoint")
        return getattr(endpoint, "__name__", request.url.path)

    async def __call__(
        self,
        request: Request,
        principal: Principal | None = Depends(get_current_principal),
        permission_cache: PermissionCache = Depends(get_permission_cache),
        db: AsyncSession = Depends(get_db),
    ) -> Principal | None:
        if not self.required_codes:
            return principal

        if principal is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if principal.is_super_admin:
            return principal

        handler = self._handler_name(request)
        try:
            bitfields = await permission_cache.get_permission_bitfields(list(self.required_codes), db)
        except CacheError:
            logger.exception(
                "Permission lookup failed for handler %s (codes: %s)",
                handler,
                ", ".join(self.required_codes),
            )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Permission check unavailable",
            )

        results = {
            code: bitfield is not None and has_bit(principal.permission_bits, parse_bits(bitfield))
            for code, bitfield in zip(self.required_codes, bitfields)
        }

        if settings.DEBUG:
            logger.debug(
                "Permission check %s: required=%s bits=%s results=%s",
                handler,
                list(self.required_codes),
                principal.permission_bits,
                results,
            )

        if not all(results.values()):
            logger.warning(
                "Permission denied for person %s on %s — required: %s",
                principal.id,
                handler,
                list(self.required_codes),
            )
            # Intentionally vague: never reveal which code failed
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

        return principal


def require_route(
    handler: str,
    *permission_codes: str,
    registry: RoutePermissionRegistry = route_permissions,
) -> require_permission:
    """Declare `handler`'s required codes and return its guard."""
    registry.declare(handler, permission_codes)
    return require_permission(*permission_codes, handler=handler)
