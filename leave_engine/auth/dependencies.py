"""Auth dependencies — JWT validation, RBAC enforcement.

Tokens are issued by the platform's identity service; the leave engine only
verifies them. Claims used: ``sub`` (user id), ``company_id``, ``name`` and
``roles`` (or a single legacy ``role``).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from leave_engine.collaborators import effective_roles
from leave_engine.common.constants import PERMISSIONS, UserRole
from leave_engine.common.exceptions import ForbiddenException
from leave_engine.config import settings


@dataclass
class CurrentUser:
    """The authenticated caller, as described by their access token."""

    id: uuid.UUID
    company_id: uuid.UUID
    name: Optional[str] = None
    roles: set[UserRole] = field(default_factory=lambda: {UserRole.employee})

    @property
    def effective_roles(self) -> set[UserRole]:
        return effective_roles(self.roles)

    def has_any_role(self, *roles: UserRole) -> bool:
        return bool(self.effective_roles.intersection(roles))


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def _parse_roles(payload: dict) -> set[UserRole]:
    raw = payload.get("roles")
    if raw is None:
        raw = [payload.get("role", UserRole.employee.value)]
    roles: set[UserRole] = set()
    for value in raw:
        try:
            roles.add(UserRole(value))
        except ValueError:
            continue
    return roles or {UserRole.employee}


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(request: Request) -> CurrentUser:
    """Validate the JWT and return the caller it identifies."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        user_id = uuid.UUID(payload["sub"])
        company_id = uuid.UUID(payload["company_id"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token is missing user or company.")

    user = CurrentUser(
        id=user_id,
        company_id=company_id,
        name=payload.get("name"),
        roles=_parse_roles(payload),
    )
    request.state.user = user
    return user


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. system_admin can access hr_admin endpoints.
    """

    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_any_role(*allowed_roles):
            held = sorted(r.value for r in user.roles)
            raise ForbiddenException(
                detail=f"Roles {held} are not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return user

    return _check


# ── Permission-based dependency ─────────────────────────────────────

def require_permission(permission: str) -> Callable:
    """Return a FastAPI dependency that enforces a specific permission string."""

    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        granted = {p for role in user.roles for p in PERMISSIONS.get(role, [])}
        if permission not in granted:
            raise ForbiddenException(
                detail=f"Permission '{permission}' is not granted.",
            )
        return user

    return _check
