"""
Password hashing, JWT helpers & the request principal.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Access tokens carry the person's aggregate permission bitfield as a
  decimal string (`permission_bits`) and an `is_super_admin` flag, so
  the permission guard never needs a database round trip on the happy
  path.
- Bits in a token are a snapshot: role changes reach the token on the
  next login, which is why access tokens are short-lived.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.rbac.bitfield import bits_to_str, parse_bits

# ── Password hashing ────────────────────────────────────────────────


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ── JWT ──────────────────────────────────────────────────────────────
# auto_error=False: public routes must work without a token; the guard
# decides whether a missing principal is fatal.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode & validate a JWT.  Raises HTTPException on failure."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ── Principal ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Principal:
    """The authenticated person as seen by the permission guard."""

    id: uuid.UUID
    permission_bits: int = 0
    is_super_admin: bool = False
    email: str | None = None

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": str(self.id),
            "email": self.email,
            "permission_bits": bits_to_str(self.permission_bits),
            "is_super_admin": self.is_super_admin,
        }

    @classmethod
    def from_claims(cls, payload: dict[str, Any]) -> "Principal":
        try:
            return cls(
                id=uuid.UUID(str(payload["sub"])),
                permission_bits=parse_bits(payload.get("permission_bits")),
                is_super_admin=payload.get("is_super_admin") is True,
                email=payload.get("email"),
            )
        except (KeyError, ValueError):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload",
                headers={"WWW-Authenticate": "Bearer"},
            )


async def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal | None:
    """
    FastAPI dependency — the principal carried by the bearer token, or
    None when the request is anonymous.  A present-but-bad token is
    always a 401.
    """
    if not token:
        return None
    return Principal.from_claims(decode_access_token(token))


async def require_principal(
    principal: Principal | None = Depends(get_current_principal),
) -> Principal:
    """Authentication only — no permission check."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal
