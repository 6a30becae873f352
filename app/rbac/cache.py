"""
Permission caches — derived, disposable, never the source of truth.

PermissionCache
    permission:bitfields:<code>      -> decimal string
    permission:categories:<category> -> comma-joined codes

RbacCache
    person-permissions:<person_id>   -> decimal string (effective bits)

Invalidation is explicit: every service that mutates roles, grants or
permissions calls the matching `clear_*` / `invalidate_*` method after
its commit and before it returns, so the caller's next read is fresh.
Anyone else may see a stale entry for at most the configured TTL.

Failure policy:
- `PermissionCache.initialize` logs and swallows backend errors — the
  app starts cold and lookups read through to the registry.
- Every other call lets `CacheError` propagate (fail closed).
"""

import logging
import uuid

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CacheBackend, get_cache
from app.core.config import settings
from app.models.permission import Permission
from app.models.role import person_roles
from app.rbac.bitfield import bits_to_str, parse_bits

logger = logging.getLogger("rbac.cache")

PERMISSION_BITFIELDS_KEY = "permission:bitfields"
PERMISSION_CATEGORIES_KEY = "permission:categories"
PERSON_PERMISSIONS_KEY = "person-permissions"


def _bitfield_key(code: str) -> str:
    return f"{PERMISSION_BITFIELDS_KEY}:{code}"


def _category_key(category: str) -> str:
    return f"{PERMISSION_CATEGORIES_KEY}:{category}"


def _person_key(person_id: uuid.UUID | str) -> str:
    return f"{PERSON_PERMISSIONS_KEY}:{person_id}"


class PermissionCache:
    """code → bitfield and category → codes lookups."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int | None = None) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.PERMISSION_CACHE_TTL_SECONDS

    async def initialize(self, db: AsyncSession) -> None:
        """Warm the cache at startup.  Never raises."""
        try:
            count = await self.populate(db)
            logger.info("Permission cache initialized with %d permissions", count)
        except Exception:
            logger.exception("Failed to initialize permission cache, starting cold")

    async def populate(self, db: AsyncSession) -> int:
        stmt = (
            select(Permission)
            .where(Permission.is_deprecated == False)  # noqa: E712
            .order_by(Permission.category, Permission.code)
        )
        permissions = (await db.execute(stmt)).scalars().all()

        by_category: dict[str, list[str]] = {}
        for permission in permissions:
            await self.backend.set(
                _bitfield_key(permission.code),
                bits_to_str(permission.bitfield),
                self.ttl_seconds,
            )
            by_category.setdefault(permission.category, []).append(permission.code)

        for category, codes in by_category.items():
            await self.backend.set(_category_key(category), ",".join(codes), self.ttl_seconds)
        return len(permissions)

    async def invalidate_permission_cache(self, db: AsyncSession) -> None:
        """Drop every bitfield / category entry the registry knows of, then repopulate."""
        logger.debug("Invalidating permission cache")
        permissions = (await db.execute(select(Permission))).scalars().all()

        for category in {p.category for p in permissions}:
            await self.backend.delete(_category_key(category))
        for permission in permissions:
            await self.backend.delete(_bitfield_key(permission.code))

        await self.populate(db)
        logger.debug("Permission cache invalidated and repopulated")

    async def get_permission_bitfields(
        self,
        codes: list[str],
        db: AsyncSession | None = None,
    ) -> list[str | None]:
        """
        Bitfields for `codes`, in input order.

        `None` marks a code that could not be resolved (unknown,
        deprecated, or a miss with no `db` to read through) — callers
        must treat it as a failed check.
        """
        results: list[str | None] = []
        for code in codes:
            cached = await self.backend.get(_bitfield_key(code))
            if cached is None and db is not None:
                cached = await self._load_bitfield(code, db)
            results.append(cached)
        return results

    async def get_category_codes(self, category: str) -> list[str] | None:
        cached = await self.backend.get(_category_key(category))
        if cached is None:
            return None
        return [code for code in cached.split(",") if code]

    async def _load_bitfield(self, code: str, db: AsyncSession) -> str | None:
        stmt = select(Permission.bitfield).where(
            Permission.code == code,
            Permission.is_deprecated == False,  # noqa: E712
        )
        bitfield = (await db.execute(stmt)).scalar_one_or_none()
        if bitfield is None:
            return None
        value = bits_to_str(bitfield)
        await self.backend.set(_bitfield_key(code), value, self.ttl_seconds)
        return value


class RbacCache:
    """Per-person effective permission bits."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int | None = None) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.PERMISSION_CACHE_TTL_SECONDS

    async def get_cached_person_permissions(self, person_id: uuid.UUID | str) -> int | None:
        cached = await self.backend.get(_person_key(person_id))
        if cached is None:
            return None
        try:
            return parse_bits(cached)
        except ValueError:
            logger.warning("Discarding unparsable cache entry for person %s", person_id)
            await self.backend.delete(_person_key(person_id))
            return None

    async def set_cached_person_permissions(self, person_id: uuid.UUID | str, bits: int) -> None:
        await self.backend.set(_person_key(person_id), bits_to_str(bits), self.ttl_seconds)

    async def clear_person_permission_cache(self, person_id: uuid.UUID | str) -> None:
        await self.backend.delete(_person_key(person_id))

    async def clear_permission_cache(self, role_id: uuid.UUID, db: AsyncSession) -> int:
        """Clear the entry of every person holding `role_id`.  Returns how many."""
        stmt = select(person_roles.c.person_id).where(person_roles.c.role_id == role_id)
        person_ids = (await db.execute(stmt)).scalars().all()
        for person_id in person_ids:
            await self.clear_person_permission_cache(person_id)
        return len(person_ids)


# ── FastAPI dependencies ─────────────────────────────────────────────


def get_permission_cache(backend: CacheBackend = Depends(get_cache)) -> PermissionCache:
    return PermissionCache(backend)


def get_rbac_cache(backend: CacheBackend = Depends(get_cache)) -> RbacCache:
    return RbacCache(backend)
