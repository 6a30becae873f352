"""
Permission service — registry queries for the admin UI and scripts.

Most permissions arrive through discovery.  `create_permission` exists
for operators who need a code before any route declares it; it uses
the same next-bit rule and refreshes the permission cache.
"""

from dataclasses import dataclass, field

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.permission import Permission
from app.models.role import Role
from app.rbac.bitfield import next_bitfield
from app.rbac.cache import PermissionCache
from app.rbac.discovery import format_label, is_valid_code

# Substrings that mark a grant worth a second look in the audit.
HIGH_RISK_MARKERS = ("delete", "manage", "admin")
# Non-system roles holding more than this share of all permissions.
OVER_PRIVILEGED_RATIO = 0.7


@dataclass
class PermissionCategory:
    name: str
    permissions: list[Permission] = field(default_factory=list)


async def get_permission_categories(
    db: AsyncSession,
    include_deprecated: bool = False,
) -> list[PermissionCategory]:
    stmt = select(Permission).order_by(Permission.category, Permission.sort_order, Permission.code)
    if not include_deprecated:
        stmt = stmt.where(Permission.is_deprecated == False)  # noqa: E712
    permissions = (await db.execute(stmt)).scalars().all()

    categories: dict[str, PermissionCategory] = {}
    for permission in permissions:
        categories.setdefault(permission.category, PermissionCategory(permission.category))
        categories[permission.category].permissions.append(permission)
    return list(categories.values())


async def find_by_codes(codes: list[str], db: AsyncSession) -> list[Permission]:
    stmt = select(Permission).where(Permission.code.in_(codes)).order_by(Permission.code)
    return list((await db.execute(stmt)).scalars().all())


async def create_permission(
    code: str,
    db: AsyncSession,
    permission_cache: PermissionCache,
    name: str | None = None,
    description: str | None = None,
) -> Permission:
    if not is_valid_code(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Permission code must look like 'category.action'",
        )

    existing = (await db.execute(select(Permission.id).where(Permission.code == code))).first()
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Permission already exists")

    stored_bits = (await db.execute(select(Permission.bitfield))).scalars().all()
    category, action = code.split(".")
    next_sort = (await db.execute(select(func.count(Permission.id)))).scalar_one()

    permission = Permission(
        code=code,
        bitfield=next_bitfield(max(stored_bits, default=0)),
        category=format_label(category),
        name=name or format_label(action),
        description=description or f"Permission to {action} {category}",
        sort_order=next_sort,
        is_deprecated=False,
    )
    db.add(permission)
    await db.commit()

    await permission_cache.invalidate_permission_cache(db)
    return permission


async def _load_roles(db: AsyncSession) -> list[Role]:
    stmt = select(Role).order_by(Role.sort_order).execution_options(populate_existing=True)
    return list((await db.execute(stmt)).scalars().all())


async def get_permission_dashboard(db: AsyncSession) -> dict:
    categories = await get_permission_categories(db)
    roles = await _load_roles(db)
    deprecated = (
        await db.execute(
            select(func.count(Permission.id)).where(Permission.is_deprecated == True)  # noqa: E712
        )
    ).scalar_one()

    return {
        "categories": categories,
        "roles": roles,
        "stats": {
            "total_permissions": sum(len(c.permissions) for c in categories),
            "total_roles": len(roles),
            "system_roles": sum(1 for r in roles if r.is_system),
            "deprecated_permissions": deprecated,
        },
    }


async def get_permission_audit(db: AsyncSession) -> dict:
    """
    Audit report: unused permissions, risky grants, over-privileged roles.

    System roles are reported but never flagged as over-privileged —
    SUPER_ADMIN holding everything is the point of it.
    """
    categories = await get_permission_categories(db)
    live = {p.id: p for c in categories for p in c.permissions}
    roles = await _load_roles(db)

    used: set = set()
    role_reports = []
    over_privileged = []
    for role in roles:
        granted = [p for p in role.permissions if p.id in live]
        used.update(p.id for p in granted)
        risky = sorted(p.code for p in granted if any(m in p.code for m in HIGH_RISK_MARKERS))
        role_reports.append(
            {
                "name": role.name,
                "is_system": role.is_system,
                "permission_count": len(granted),
                "high_risk": risky,
            }
        )
        if not role.is_system and live and len(granted) > len(live) * OVER_PRIVILEGED_RATIO:
            over_privileged.append(role.name)

    return {
        "total_permissions": len(live),
        "total_roles": len(roles),
        "categories": {c.name: len(c.permissions) for c in categories},
        "roles": role_reports,
        "unused_permissions": sorted(p.code for pid, p in live.items() if pid not in used),
        "over_privileged_roles": over_privileged,
    }
