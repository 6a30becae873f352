"""
Permission discovery — keeps the permission registry in step with the
codes the routers declare.

Flow (run once at startup, or on demand by an operator):

1. Read every handler declaration from the route registry.
2. Validate codes (`category.action`); malformed ones are logged and
   skipped — they never reach the database.
3. Sort by category then name and give every *new* code the next free
   bit, doubling from the largest bit ever assigned.
4. In ONE transaction: insert new codes, reactivate codes that came
   back, deprecate codes nobody declares any more, and grant the
   super-admin role everything it is missing.

Bits are never reused.  Deprecated permissions keep their bit, so the
"largest bit ever assigned" includes them.

Concurrency: two processes syncing at the same time can compute the
same next bit.  Run discovery from a single instance (startup of one
replica, a release step, ...) — it is not safe as a fleet-wide job.
"""

import logging
import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.permission import Permission
from app.models.role import Role, role_permissions
from app.rbac.bitfield import next_bitfield
from app.rbac.routes import HandlerDeclaration, RoutePermissionRegistry, route_permissions

logger = logging.getLogger("rbac.discovery")

CODE_PATTERN = re.compile(r"^[A-Za-z][\w-]*\.[A-Za-z][\w-]*$")


@dataclass
class DiscoveredPermission:
    code: str
    name: str
    category: str
    description: str
    sort_order: int
    # None for codes already present in the registry.
    bitfield: int | None = None


@dataclass
class SyncResult:
    inserted: list[str] = field(default_factory=list)
    deprecated: list[str] = field(default_factory=list)
    reactivated: list[str] = field(default_factory=list)
    granted: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.deprecated or self.reactivated or self.granted)


def is_valid_code(code: object) -> bool:
    return isinstance(code, str) and CODE_PATTERN.match(code) is not None


def format_label(value: str) -> str:
    """`user_management` -> `User Management`."""
    return " ".join(word.capitalize() for word in re.split(r"[_\-\s]+", value) if word)


def discover_permissions(
    declarations: RoutePermissionRegistry | Iterable[HandlerDeclaration],
    *,
    existing_codes: Collection[str] = frozenset(),
    last_bitfield: int = 0,
) -> list[DiscoveredPermission]:
    """
    Collect the declared codes and pre-assign bits to the new ones.

    Returned records are sorted by category then name; that is also the
    order in which new bits are handed out, so the assignment is fully
    determined before anything is written.
    """
    if isinstance(declarations, RoutePermissionRegistry):
        handlers = declarations.handlers()
    else:
        handlers = list(declarations)

    found: dict[str, DiscoveredPermission] = {}
    for declaration in handlers:
        for code in declaration.codes:
            if not is_valid_code(code):
                logger.warning(
                    "Skipping malformed permission code %r declared on %s",
                    code,
                    declaration.handler,
                )
                continue
            if code in found:
                continue
            category, action = code.split(".")
            found[code] = DiscoveredPermission(
                code=code,
                name=format_label(action),
                category=format_label(category),
                description=f"Permission to {action} {category}",
                sort_order=len(found),
            )
            if settings.DEBUG:
                logger.debug("Discovered permission %s on %s", code, declaration.handler)

    discovered = sorted(found.values(), key=lambda p: (p.category, p.name, p.sort_order))

    bitfield = last_bitfield
    for item in discovered:
        if item.code in existing_codes:
            continue
        bitfield = next_bitfield(bitfield)
        item.bitfield = bitfield

    logger.debug("Discovered %d permission codes across %d handlers", len(discovered), len(handlers))
    return discovered


async def sync_permissions(
    db: AsyncSession,
    declarations: RoutePermissionRegistry | Iterable[HandlerDeclaration] = route_permissions,
    *,
    permission_cache=None,
    rbac_cache=None,
    super_admin_role: str | None = None,
) -> SyncResult:
    """Reconcile the registry with the declarations.  All-or-nothing.

    After the commit, `permission_cache` is dropped and repopulated and
    `rbac_cache` loses the entry of every person holding a role whose
    live grants changed (deprecation, reactivation or super-admin grant).
    """
    super_admin_role = super_admin_role or settings.SUPER_ADMIN_ROLE
    result = SyncResult()

    try:
        stored = list((await db.execute(select(Permission))).scalars().all())
        by_code = {p.code: p for p in stored}
        last_bitfield = max((p.bitfield for p in stored), default=0)

        discovered = discover_permissions(
            declarations,
            existing_codes=by_code.keys(),
            last_bitfield=last_bitfield,
        )
        discovered_codes = {item.code for item in discovered}

        # ── Insert / reactivate ──────────────────────────────────────
        for item in discovered:
            current = by_code.get(item.code)
            if current is None:
                permission = Permission(
                    code=item.code,
                    bitfield=item.bitfield,
                    category=item.category,
                    name=item.name,
                    description=item.description,
                    sort_order=item.sort_order,
                    is_deprecated=False,
                )
                db.add(permission)
                by_code[item.code] = permission
                result.inserted.append(item.code)
                logger.info("New permission %s -> bit %s", item.code, item.bitfield)
            elif current.is_deprecated:
                current.is_deprecated = False
                result.reactivated.append(item.code)

        # ── Deprecate codes no longer declared ───────────────────────
        for permission in stored:
            if permission.code not in discovered_codes and not permission.is_deprecated:
                permission.is_deprecated = True
                result.deprecated.append(permission.code)

        await db.flush()

        # ── Super-admin role holds every live permission ─────────────
        role = (
            await db.execute(select(Role).where(Role.name == super_admin_role))
        ).scalar_one_or_none()
        if role is not None:
            held = set(
                (
                    await db.execute(
                        select(role_permissions.c.permission_id).where(
                            role_permissions.c.role_id == role.id
                        )
                    )
                ).scalars().all()
            )
            missing = [p for p in by_code.values() if not p.is_deprecated and p.id not in held]
            if missing:
                await db.execute(
                    insert(role_permissions),
                    [{"role_id": role.id, "permission_id": p.id} for p in missing],
                )
                result.granted = sorted(p.code for p in missing)
        else:
            logger.warning("Role %s not found, skipping permission grant", super_admin_role)

        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to sync permissions")
        raise

    if result.deprecated:
        logger.info("Deprecated permissions: %s", ", ".join(result.deprecated))
    if result.reactivated:
        logger.info("Reactivated permissions: %s", ", ".join(result.reactivated))

    if permission_cache is not None:
        await permission_cache.invalidate_permission_cache(db)

    if rbac_cache is not None:
        changed_codes = result.deprecated + result.reactivated + result.granted
        if changed_codes:
            stmt = (
                select(role_permissions.c.role_id)
                .join(Permission, Permission.id == role_permissions.c.permission_id)
                .where(Permission.code.in_(changed_codes))
                .distinct()
            )
            for role_id in (await db.execute(stmt)).scalars().all():
                await rbac_cache.clear_permission_cache(role_id, db)

    return result


async def get_permissions_by_category(db: AsyncSession) -> dict[str, list[Permission]]:
    """Live permissions grouped by category, ordered by category then code."""
    stmt = (
        select(Permission)
        .where(Permission.is_deprecated == False)  # noqa: E712
        .order_by(Permission.category, Permission.code)
    )
    permissions = (await db.execute(stmt)).scalars().all()

    grouped: dict[str, list[Permission]] = {}
    for permission in permissions:
        grouped.setdefault(permission.category, []).append(permission)
    return grouped
