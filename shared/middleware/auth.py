"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.
The signed session cookie (Starlette SessionMiddleware) carries user_id and role;
the user row is always re-loaded so deleted or deactivated accounts lose access.
"""

import uuid
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import ForbiddenError, NotFoundError, UnauthenticatedError
from shared.models.models import User, UserRole


def _session_user_id(request: Request) -> Optional[uuid.UUID]:
    raw = request.session.get("user_id")
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        # Cookie signed with our key but holding garbage: treat as logged out
        request.session.clear()
        return None


def login_session(request: Request, user: User) -> None:
    request.session["user_id"] = str(user.id)
    request.session["role"] = user.role.value if isinstance(user.role, UserRole) else user.role


def logout_session(request: Request) -> None:
    request.session.clear()


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Returns current user if logged in, None otherwise. For public endpoints."""
    user_id = _session_user_id(request)
    if user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        return None
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the session's User; 401 without a session, 404 if the account is gone."""
    user_id = _session_user_id(request)
    if user_id is None:
        raise UnauthenticatedError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise ForbiddenError("User account is inactive")
    return user


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(
        self,
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in self.roles:
            raise ForbiddenError(f"Required role: {[r.value for r in self.roles]}")
        return current_user


require_admin = RoleRequired(UserRole.ADMIN)
