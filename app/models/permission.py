from __future__ import annotations

"""
Permission model.

Permissions are *immutable codes* of the form `<category>.<action>`
(e.g. `roles.read`).  They are discovered from the route declarations
at startup, never typed in by hand, and each one owns a single bit of
the permission bitfield.

Bits are handed out monotonically (`2 × max`) and never reused: a
deprecated permission keeps its bit so historical grants stay
unambiguous.
"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.types import BitfieldType


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "permissions"

    code: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    bitfield: Mapped[int] = mapped_column(BitfieldType, unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_deprecated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Permission {self.code} bit={self.bitfield}>"
