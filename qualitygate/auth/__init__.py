"""Bearer API key authentication for users."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from qualitygate.db import SessionLocal
from qualitygate.models import GlobalPermission, UserModel


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_AUTH_DISABLED = os.getenv("QUALITYGATE_AUTH_DISABLED", "").lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Key hashing
# ---------------------------------------------------------------------------

def hash_api_key(raw_key: str) -> str:
    """SHA-256 hash of the raw API key for storage/comparison."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Auth context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthContext:
    """Authenticated principal for a request.

    ``user_uuid`` is ``None`` only for the anonymous context used when
    authentication is disabled.
    """
    user_uuid: str | None
    login: str
    global_permissions: frozenset[str] = field(default_factory=frozenset)

    def has_global_permission(self, permission: str) -> bool:
        return (
            GlobalPermission.ADMINISTER.value in self.global_permissions
            or permission in self.global_permissions
        )


_ANONYMOUS_CONTEXT = AuthContext(
    user_uuid=None,
    login="anonymous",
    global_permissions=frozenset({GlobalPermission.ADMINISTER.value}),
)

_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": code, "message": message, "retryable": False}},
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthContext:
    """Authenticate via Bearer API key. Returns AuthContext or raises 401."""
    if _AUTH_DISABLED:
        return _ANONYMOUS_CONTEXT

    if credentials is None:
        raise _unauthorized("AUTH_MISSING", "Authorization header with Bearer token is required")

    key_hash = hash_api_key(credentials.credentials)
    with SessionLocal() as session:
        user = session.execute(
            select(UserModel).where(
                UserModel.api_key_hash == key_hash,
                UserModel.active.is_(True),
            )
        ).scalar_one_or_none()
        if user is None:
            raise _unauthorized("AUTH_INVALID", "Invalid API key or inactive user")

        return AuthContext(
            user_uuid=user.uuid,
            login=user.login,
            global_permissions=frozenset(user.global_permissions or []),
        )
