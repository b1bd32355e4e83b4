"""
services/auth/router.py
Username/password authentication backed by a signed session cookie.
Implements: Signup → Login → Me → Logout
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import ConflictError, UnauthenticatedError
from shared.middleware.auth import get_optional_user, login_session, logout_session
from shared.models.models import User, UserRole
from shared.schemas.schemas import (
    AuthUserResponse,
    LoginRequest,
    MessageResponse,
    SignupRequest,
    UserResponse,
)
from shared.utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/signup", response_model=AuthUserResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Create an account and log it in."""
    existing = await db.execute(select(User.id).where(User.username == data.username))
    if existing.scalar_one_or_none():
        raise ConflictError("Username already exists")

    user = User(
        username=data.username,
        display_name=data.display_name or data.username,
        password_hash=hash_password(data.password),
        role=UserRole.USER,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent signup for the same name
        await db.rollback()
        raise ConflictError("Username already exists") from e

    login_session(request, user)
    logger.info(f"New user signed up: {user.username}")
    return AuthUserResponse(message="Signup successful", user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthUserResponse)
async def login(
    data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.username == data.username))
    user = result.scalar_one_or_none()

    if not user or not user.is_active or not verify_password(data.password, user.password_hash):
        raise UnauthenticatedError("Invalid credentials")

    login_session(request, user)
    return AuthUserResponse(message="Logged in", user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request):
    logout_session(request)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=AuthUserResponse)
async def me(current_user: Optional[User] = Depends(get_optional_user)):
    """Current session's user, or `{"user": null}` when logged out."""
    if current_user is None:
        return AuthUserResponse(user=None)
    return AuthUserResponse(user=UserResponse.model_validate(current_user))
