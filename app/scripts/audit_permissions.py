"""
Permission audit report.

Flags permissions no role grants, high-risk grants (delete / manage /
admin codes) and non-system roles holding most of the registry.

Usage:
    python -m app.scripts.audit_permissions
"""

import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.services.permission_service import get_permission_audit


async def audit_permissions() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        report = await get_permission_audit(session)
    await engine.dispose()

    print("\n📋  Permission audit\n")
    print(f"  Permissions: {report['total_permissions']}")
    print(f"  Roles:       {report['total_roles']}")

    print("\n  By category:")
    for category, count in report["categories"].items():
        print(f"    {category:<30} {count}")

    print("\n  Roles:")
    for role in report["roles"]:
        marker = " [system]" if role["is_system"] else ""
        print(f"    {role['name']:<30} {role['permission_count']:>4} permissions{marker}")
        for code in role["high_risk"]:
            print(f"      ⚠  {code}")

    if report["unused_permissions"]:
        print("\n  Granted to no role:")
        for code in report["unused_permissions"]:
            print(f"    - {code}")

    if report["over_privileged_roles"]:
        print("\n  ⚠  Over-privileged roles:")
        for name in report["over_privileged_roles"]:
            print(f"    - {name}")
    print()


if __name__ == "__main__":
    asyncio.run(audit_permissions())
