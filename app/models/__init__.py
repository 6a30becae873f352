"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.permission import Permission
from app.models.role import Role, person_roles, role_permissions
from app.models.person import Person, PersonStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Permission",
    "Role",
    "person_roles",
    "role_permissions",
    "Person",
    "PersonStatus",
]
