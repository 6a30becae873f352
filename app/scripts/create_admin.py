"""
Bootstrap the first super admin.

Usage:
    python -m app.scripts.create_admin --email root@example.com --full-name "Root"

The password is read from the terminal.  Run discovery and seeding
first (start the app once, or `python -m app.rbac.permission_seed`) so
the super-admin role exists.
"""

import argparse
import asyncio
import getpass
import sys

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.cache import close_cache, get_cache
from app.core.config import settings
from app.models.person import Person
from app.models.role import Role
from app.rbac.cache import RbacCache
from app.services.person_role_service import assign_role
from app.services.person_service import create_person


class BootstrapError(RuntimeError):
    pass


async def create_super_admin(
    email: str,
    full_name: str,
    password: str,
    *,
    db: AsyncSession,
    rbac_cache: RbacCache,
) -> Person:
    role = (
        await db.execute(select(Role).where(Role.name == settings.SUPER_ADMIN_ROLE))
    ).scalar_one_or_none()
    if role is None:
        raise BootstrapError(f"{settings.SUPER_ADMIN_ROLE} role not found; seed the default roles first")

    try:
        person = await create_person(email, full_name, password, db)
    except HTTPException as exc:
        raise BootstrapError(exc.detail) from exc

    return await assign_role(person.id, role.id, db=db, rbac_cache=rbac_cache)


async def main(email: str, full_name: str) -> int:
    password = getpass.getpass("Password: ")
    if not password or password != getpass.getpass("Confirm:  "):
        print("Passwords are empty or do not match.", file=sys.stderr)
        return 1

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as session:
            person = await create_super_admin(
                email,
                full_name,
                password,
                db=session,
                rbac_cache=RbacCache(get_cache()),
            )
    except BootstrapError as exc:
        print(f"✖  {exc}", file=sys.stderr)
        return 1
    finally:
        await close_cache()
        await engine.dispose()

    print(f"✔  {settings.SUPER_ADMIN_ROLE} {person.email} created ({person.id})")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the first super admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--full-name", required=True)
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.email, args.full_name)))
