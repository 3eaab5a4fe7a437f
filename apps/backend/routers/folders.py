"""
Folders Router
==============
Folder tree management and per-user folder permissions.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_roles
from exceptions import PermissionDeniedError
from logging_config import get_logger
from models import User
from schemas import (
    FolderAccessResponse,
    FolderCreate,
    FolderPermissionCreate,
    FolderPermissionResponse,
    FolderPermissionUpdate,
    FolderPermissionWithUser,
    FolderResponse,
    FolderUpdate,
)
from services.folder_service import FolderService

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Folder Tree
# =============================================================================

@router.get("", response_model=List[FolderResponse])
async def list_folders(
    parent_id: Optional[int] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Children of `parent_id`, or the root folders when it is omitted."""
    return await FolderService.from_session(session).list_folders(parent_id)


@router.get("/all", response_model=List[FolderResponse])
async def list_all_folders(
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await FolderService.from_session(session).list_all()


@router.get("/{folder_id}", response_model=FolderResponse)
async def get_folder(
    folder_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await FolderService.from_session(session).require_folder(folder_id)


@router.get("/{folder_id}/path", response_model=List[FolderResponse])
async def get_folder_path(
    folder_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Breadcrumb from the root folder down to this one."""
    return await FolderService.from_session(session).get_breadcrumb(folder_id)


@router.post("", response_model=FolderResponse, status_code=201)
async def create_folder(
    request: FolderCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a folder. The creator becomes its owner."""
    return await FolderService.from_session(session).create_folder(request.name, request.parent_id, user.id)


@router.put("/{folder_id}", response_model=FolderResponse)
async def update_folder(
    folder_id: int,
    request: FolderUpdate,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Rename and/or move a folder. Paths of the whole subtree are rewritten."""
    move = {"parent_id": request.parent_id} if "parent_id" in request.model_fields_set else {}
    return await FolderService.from_session(session).update_folder(folder_id, name=request.name, **move)


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: int,
    user: User = Depends(require_roles("admin", permission="can_delete_folders")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Delete a folder with its subfolders, documents and stored files."""
    counts = await FolderService.from_session(session).delete_folder(folder_id, user_id=user.id)
    logger.info("Folder deleted", folder_id=folder_id, user_id=user.id, **counts)
    return {"message": "Folder deleted", **counts}


# =============================================================================
# Folder Permissions
# =============================================================================

@router.get("/{folder_id}/permissions", response_model=List[FolderPermissionWithUser])
async def list_folder_permissions(
    folder_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Grants on a folder. Only its owners and administrators may look."""
    service = FolderService.from_session(session)
    await service.require_manage(folder_id, user)
    return await service.list_permissions(folder_id)


@router.get("/{folder_id}/check-access", response_model=FolderAccessResponse)
async def check_folder_access(
    folder_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    has_access, permission = await FolderService.from_session(session).check_access(folder_id, user)
    return FolderAccessResponse(
        has_access=has_access,
        permissions=FolderPermissionResponse.model_validate(permission) if permission else None,
    )


@router.post("/{folder_id}/permissions", response_model=FolderPermissionResponse, status_code=201)
async def grant_folder_permission(
    folder_id: int,
    request: FolderPermissionCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Share a folder. Owners, administrators and holders of can_share may do this."""
    service = FolderService.from_session(session)
    await service.require_manage(folder_id, user, sharing=True)

    flags = request.model_dump(exclude={"user_id"})
    if flags.get("is_owner") and not await service.can_manage_permissions(folder_id, user):
        raise PermissionDeniedError(
            "Only owners can grant ownership", action="grant_folder_owner", user_id=user.id
        )

    permission = await service.grant_permission(folder_id, request.user_id, **flags)
    logger.info("Folder shared", folder_id=folder_id, target_user_id=request.user_id, user_id=user.id)
    return permission


@router.put("/{folder_id}/permissions/{user_id}", response_model=FolderPermissionResponse)
async def update_folder_permission(
    folder_id: int,
    user_id: int,
    request: FolderPermissionUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = FolderService.from_session(session)
    await service.require_manage(folder_id, user)
    return await service.update_permission(folder_id, user_id, request.model_dump(exclude_unset=True))


@router.delete("/{folder_id}/permissions/{user_id}", status_code=204)
async def revoke_folder_permission(
    folder_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = FolderService.from_session(session)
    await service.require_manage(folder_id, user)
    await service.revoke_permission(folder_id, user_id)
    return Response(status_code=204)
