"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.

Bitfields are serialized as decimal strings: they outgrow the 53-bit
integers JavaScript clients can represent exactly.
"""

import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, EmailStr, Field, PlainSerializer

BitfieldStr = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str)]


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    person_id: str
    roles: list[str]
    permission_bits: str
    is_super_admin: bool = False


class PrincipalOut(BaseModel):
    id: uuid.UUID
    email: str | None = None
    permission_bits: BitfieldStr
    is_super_admin: bool


# ── Person ───────────────────────────────────────────────────────────
class CreatePersonRequest(BaseModel):
    email: EmailStr
    full_name: str
    password: str = Field(min_length=8)


class PersonOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Permission ───────────────────────────────────────────────────────
class PermissionOut(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    category: str
    description: str | None = None
    bitfield: BitfieldStr
    sort_order: int
    is_deprecated: bool

    model_config = {"from_attributes": True}


class PermissionCategoryOut(BaseModel):
    name: str
    permissions: list[PermissionOut]

    model_config = {"from_attributes": True}


class CreatePermissionRequest(BaseModel):
    code: str = Field(min_length=3, max_length=128)
    name: str | None = None
    description: str | None = None


class SyncResultOut(BaseModel):
    inserted: list[str]
    deprecated: list[str]
    reactivated: list[str]
    granted: list[str]

    model_config = {"from_attributes": True}


# ── Role ─────────────────────────────────────────────────────────────
class RoleOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    is_system: bool
    sort_order: int
    permissions: list[PermissionOut] = []

    model_config = {"from_attributes": True}


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    description: str | None = None
    permission_codes: list[str] = []


class UpdateRoleRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = None


class TogglePermissionRequest(BaseModel):
    permission_code: str
    enabled: bool


class RolePositionRequest(BaseModel):
    position: int


class AssignRoleRequest(BaseModel):
    person_id: uuid.UUID


class PersonRolesOut(BaseModel):
    person_id: uuid.UUID
    roles: list[RoleOut]


# ── Dashboard / audit ────────────────────────────────────────────────
class DashboardStats(BaseModel):
    total_permissions: int
    total_roles: int
    system_roles: int
    deprecated_permissions: int


class DashboardOut(BaseModel):
    categories: list[PermissionCategoryOut]
    roles: list[RoleOut]
    stats: DashboardStats


class RoleAuditOut(BaseModel):
    name: str
    is_system: bool
    permission_count: int
    high_risk: list[str]


class AuditOut(BaseModel):
    total_permissions: int
    total_roles: int
    categories: dict[str, int]
    roles: list[RoleAuditOut]
    unused_permissions: list[str]
    over_privileged_roles: list[str]


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
