"""
Route permission declarations.

An explicit map from route handler identifier (e.g. `roles.list`) to
the permission codes that handler requires.  Routers fill it at import
time through `require_route(...)`; permission discovery reads it at
startup.  Nothing here inspects function objects — what is declared is
exactly what gets discovered.
"""

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class HandlerDeclaration:
    handler: str
    codes: tuple[str, ...]


def _normalize(codes: str | Iterable[str] | None) -> tuple[str, ...]:
    if codes is None:
        return ()
    if isinstance(codes, str):
        return (codes,)
    return tuple(codes)


class RoutePermissionRegistry:
    """Ordered handler → required-codes mapping."""

    def __init__(self) -> None:
        self._handlers: dict[str, tuple[str, ...]] = {}

    def declare(self, handler: str, codes: str | Iterable[str] | None = None) -> tuple[str, ...]:
        normalized = _normalize(codes)
        existing = self._handlers.get(handler)
        if existing is not None and existing != normalized:
            raise ValueError(
                f"handler {handler!r} already declared with {existing}, got {normalized}"
            )
        self._handlers[handler] = normalized
        return normalized

    def codes_for(self, handler: str) -> tuple[str, ...]:
        return self._handlers.get(handler, ())

    def handlers(self) -> list[HandlerDeclaration]:
        return [HandlerDeclaration(handler, codes) for handler, codes in self._handlers.items()]

    def __len__(self) -> int:
        return len(self._handlers)


# Process-wide registry used by the application routers.
route_permissions = RoutePermissionRegistry()
