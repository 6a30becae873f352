"""
Print the permission registry grouped by category.

Usage:
    python -m app.scripts.list_permissions
    python -m app.scripts.list_permissions --all     # include deprecated
"""

import argparse
import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.rbac.bitfield import bit_position
from app.services.permission_service import get_permission_categories


async def list_permissions(include_deprecated: bool) -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        categories = await get_permission_categories(session, include_deprecated)

    total = 0
    for category in categories:
        print(f"\n{category.name}")
        for permission in category.permissions:
            flag = "  (deprecated)" if permission.is_deprecated else ""
            print(
                f"  bit {bit_position(permission.bitfield):>3}  "
                f"{permission.code:<40} {permission.name}{flag}"
            )
            total += 1
    print(f"\n{total} permissions in {len(categories)} categories\n")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List registered permissions")
    parser.add_argument("--all", action="store_true", help="include deprecated permissions")
    args = parser.parse_args()
    asyncio.run(list_permissions(args.all))
