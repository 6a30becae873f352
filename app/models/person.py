from __future__ import annotations

"""
Person model — the principal whose access is checked.

Design decisions:
- Roles are attached via a many-to-many so new roles can be added
  without schema changes.
- No permission columns here: the effective bitfield is derived from
  the roles and lives in the cache and the access token only.
"""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from typing import TYPE_CHECKING

from app.models.role import person_roles  # association table

if TYPE_CHECKING:
    from app.models.role import Role


class PersonStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class Person(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "persons"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(512), nullable=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[PersonStatus] = mapped_column(
        Enum(PersonStatus, name="person_status"),
        default=PersonStatus.ACTIVE,
        nullable=False,
    )

    # ── Relationships ────────────────────────────────────────────────
    roles: Mapped[list["Role"]] = relationship(  # noqa: F821
        secondary=person_roles,
        lazy="selectin",
        order_by="Role.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Person {self.email}>"
