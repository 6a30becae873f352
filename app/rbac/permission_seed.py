"""
Default role seeding.

Permissions are never seeded by hand — discovery owns them.  This
module only makes sure the default roles exist.  It is IDEMPOTENT:
a role that already exists is left alone, so grants an operator
changed are never reset.

Default grants are applied once, when a role is created, and only for
codes already in the registry.  Run discovery first (startup does).

Rules:
    • SUPER_ADMIN is a system role: protected from the management API,
      and discovery grants it every new permission.
    • ADMIN / USER are ordinary roles with a starting set of grants.

Usage:
    python -m app.rbac.permission_seed
"""

import asyncio
import logging
import uuid

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models.permission import Permission
from app.models.role import Role, role_permissions
from app.rbac.discovery import sync_permissions

logger = logging.getLogger("rbac.seed")

ALL_PERMISSIONS = "*"

# ────────────────────────────────────────────────────────────────────
# DEFAULT ROLES  (name, description, is_system, default grants)
# ────────────────────────────────────────────────────────────────────
DEFAULT_ROLES: list[tuple[str, str, bool, list[str] | str]] = [
    (settings.SUPER_ADMIN_ROLE, "Holds every permission", True, ALL_PERMISSIONS),
    (
        "ADMIN",
        "Manages roles and persons",
        False,
        [
            "roles.read",
            "roles.create",
            "roles.update",
            "roles.delete",
            "roles.assign",
            "persons.read",
            "persons.create",
            "persons.disable",
            "permissions.read",
        ],
    ),
    ("USER", "Default role for new persons", False, []),
]


async def seed(session: AsyncSession) -> list[str]:
    """Create missing default roles.  Returns the names created."""
    existing = set((await session.execute(select(Role.name))).scalars().all())
    live = {
        p.code: p.id
        for p in (
            await session.execute(select(Permission).where(Permission.is_deprecated == False))  # noqa: E712
        ).scalars().all()
    }
    position = (await session.execute(select(func.count(Role.id)))).scalar_one()

    created: list[str] = []
    for name, description, is_system, grants in DEFAULT_ROLES:
        if name in existing:
            continue
        role = Role(
            id=uuid.uuid4(),
            name=name,
            description=description,
            is_system=is_system,
            sort_order=position,
        )
        position += 1
        session.add(role)
        await session.flush()

        codes = list(live) if grants == ALL_PERMISSIONS else [c for c in grants if c in live]
        if codes:
            await session.execute(
                insert(role_permissions),
                [{"role_id": role.id, "permission_id": live[c]} for c in codes],
            )
        created.append(name)

    await session.commit()
    if created:
        logger.info("Seeded roles: %s", ", ".join(created))
    return created


# ────────────────────────────────────────────────────────────────────
# CLI entrypoint:  python -m app.rbac.permission_seed
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    # Importing the app registers every route declaration.
    import app.main  # noqa: F401

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    async with async_session() as session:
        await sync_permissions(session)
        created = await seed(session)
    await engine.dispose()
    print(f"✔  Default roles seeded ({len(created)} created).")


if __name__ == "__main__":
    asyncio.run(main())
