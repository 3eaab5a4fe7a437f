"""
Auth Router
===========
Registration, login/logout and the current-user endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import bearer_scheme, get_current_user
from exceptions import AuthenticationError
from logging_config import get_logger
from models import User, UserRole, UserStatus
from schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    UserResponse,
    UserWithPermissions,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
)
from services.auth_service import AuthService
from services.user_service import UserService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/register", response_model=LoginResponse, status_code=201)
async def register(request: RegisterRequest, session: AsyncSession = Depends(get_session)):
    """
    Create an account and sign it in.

    Self-registered accounts are always plain active users.
    """
    user = await UserService.from_session(session).create_user(
        username=request.username,
        password=request.password,
        email=request.email,
        name=request.name,
        role=UserRole.USER.value,
        status=UserStatus.ACTIVE.value,
    )
    token, expires_at = await AuthService.from_session(session).create_session(user)

    logger.info("User registered", user_id=user.id, username=user.username)
    return LoginResponse(token=token, expires_at=expires_at, user=UserResponse.model_validate(user))


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, session: AsyncSession = Depends(get_session)):
    auth = AuthService.from_session(session)
    user = await auth.authenticate(request.username, request.password)
    token, expires_at = await auth.create_session(user)
    return LoginResponse(token=token, expires_at=expires_at, user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
):
    """Delete the caller's session. Unknown tokens are not an error."""
    if credentials is None:
        raise AuthenticationError()
    await AuthService.from_session(session).revoke_session(credentials.credentials)
    return MessageResponse(message="Logged out")


@router.get("/user", response_model=UserWithPermissions)
async def current_user(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """The signed-in user with effective role name and permission flags."""
    return await UserService.from_session(session).get_user_with_permissions(user.id)


@router.post("/auth/verify-admin-password", response_model=VerifyPasswordResponse)
async def verify_admin_password(
    request: VerifyPasswordRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Re-check the administrator's password before a sensitive action.

    Returns 403 for non-admins, 400 without a password and 401 when it is wrong.
    """
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Only administrators can verify this password")
    if not request.password:
        raise HTTPException(status_code=400, detail="Password is required")

    if not await AuthService.from_session(session).verify_admin_password(user, request.password):
        raise AuthenticationError("Incorrect password")

    return VerifyPasswordResponse(success=True, message="Password verified")
