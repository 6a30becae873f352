"""
Run permission discovery against the declared routes.

Use this as a release step when SYNC_PERMISSIONS_ON_STARTUP is off.
Run it from ONE place only — concurrent syncs can hand out the same
bit twice.

Usage:
    python -m app.scripts.sync_permissions
"""

import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.cache import close_cache, get_cache
from app.core.config import settings
from app.rbac.cache import PermissionCache, RbacCache
from app.rbac.discovery import sync_permissions
from app.rbac.routes import route_permissions


async def main() -> None:
    # Importing the app registers every route declaration.
    import app.main  # noqa: F401

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        result = await sync_permissions(
            session,
            route_permissions,
            permission_cache=PermissionCache(get_cache()),
            rbac_cache=RbacCache(get_cache()),
        )

    await close_cache()
    await engine.dispose()

    print(f"\n✔  Synced {len(route_permissions)} route declarations")
    for label, codes in (
        ("New", result.inserted),
        ("Deprecated", result.deprecated),
        ("Reactivated", result.reactivated),
        ("Granted to super admin", result.granted),
    ):
        if codes:
            print(f"   {label}: {', '.join(codes)}")
    if not result.changed:
        print("   Registry already up to date.")
    print()


if __name__ == "__main__":
    asyncio.run(main())
