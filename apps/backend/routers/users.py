"""
Users Router
============
User administration, custom role assignment and per-user lookups.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_admin, require_roles, require_self_or_admin
from logging_config import get_logger
from models import User
from schemas import (
    FolderPermissionResponse,
    UserCreate,
    UserResponse,
    UserRoleUpdate,
    UserStatusUpdate,
    UserWithPermissions,
)
from services.folder_service import FolderService
from services.user_service import UserService

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[UserResponse])
async def list_users(
    _: User = Depends(require_roles("admin", permission="can_manage_users")),
    session: AsyncSession = Depends(get_session),
):
    return await UserService.from_session(session).list_users()


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    request: UserCreate,
    admin: User = Depends(require_roles("admin", permission="can_manage_users")),
    session: AsyncSession = Depends(get_session),
):
    """Create an account with an explicit role and status."""
    user = await UserService.from_session(session).create_user(**request.model_dump())
    logger.info("User created by admin", user_id=user.id, admin_id=admin.id)
    return user


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    request: UserRoleUpdate,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await UserService.from_session(session).update_role(user_id, request.role)


@router.put("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    request: UserStatusUpdate,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Activate, disable or park an account. Non-active accounts lose their sessions."""
    return await UserService.from_session(session).update_status(user_id, request.status)


@router.post("/{user_id}/role/{role_id}", response_model=UserResponse)
async def assign_custom_role(
    user_id: int,
    role_id: int,
    _: User = Depends(require_roles("admin", permission="can_manage_roles")),
    session: AsyncSession = Depends(get_session),
):
    return await UserService.from_session(session).assign_custom_role(user_id, role_id)


@router.get("/{user_id}/permissions", response_model=UserWithPermissions)
async def get_user_permissions(
    user_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    require_self_or_admin(user, user_id)
    return await UserService.from_session(session).get_user_with_permissions(user_id)


@router.get("/{user_id}/folder-permissions", response_model=List[FolderPermissionResponse])
async def get_user_folder_permissions(
    user_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    require_self_or_admin(user, user_id)
    return await FolderService.from_session(session).list_user_permissions(user_id)
