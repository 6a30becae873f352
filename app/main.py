"""
FastAPI application factory.

Assembles the app, registers all routers, and wires up lifecycle
events.  Database schema is managed by Alembic — NOT create_all.

Importing the routers fills the route permission registry, so by the
time startup runs, discovery sees every declared code.
"""

import logging

from fastapi import FastAPI

from app.controllers.auth_controller import router as auth_router
from app.controllers.permission_controller import router as permission_router
from app.controllers.person_controller import router as person_router
from app.controllers.role_controller import router as role_router
from app.core.cache import close_cache, get_cache
from app.core.config import settings
from app.core.database import SessionLocal, engine
from app.models import Base  # noqa: F401  registers every model
from app.rbac.cache import PermissionCache, RbacCache

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def bootstrap_permissions() -> None:
    """Discovery, default roles, then a fresh cache.

    Failures are logged, never fatal: the registry keeps its previous
    state and lookups read through to it.
    """
    from app.rbac import discovery
    from app.rbac.permission_seed import seed

    backend = get_cache()
    permission_cache = PermissionCache(backend)

    async with SessionLocal() as session:
        if settings.SYNC_PERMISSIONS_ON_STARTUP:
            try:
                result = await discovery.sync_permissions(
                    session,
                    permission_cache=permission_cache,
                    rbac_cache=RbacCache(backend),
                )
                logger.info(
                    "Permission sync complete: %d new, %d deprecated, %d reactivated",
                    len(result.inserted),
                    len(result.deprecated),
                    len(result.reactivated),
                )
                await seed(session)
                # Synced and refreshed; nothing left to warm.
                return
            except Exception:
                logger.exception("Permission sync failed at startup")

        await permission_cache.initialize(session)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(role_router)
    app.include_router(permission_router)
    app.include_router(person_router)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Sync the permission registry on startup.

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        await bootstrap_permissions()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await close_cache()
        await engine.dispose()
        logger.info("Database engine disposed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
