"""
Projects Router
===============
Projects with their managers, members and linked documents.

Administrators manage projects; project managers manage membership and
documents of their own projects.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_admin, require_roles
from logging_config import get_logger
from models import User
from schemas import (
    ImageUploadResponse,
    ManagerCreate,
    ManagerResponse,
    ManagerWithUser,
    MemberCreate,
    MemberResponse,
    MemberUpdate,
    MemberWithUser,
    ProjectCreate,
    ProjectDocumentCreate,
    ProjectDocumentResponse,
    ProjectDocumentWithDocument,
    ProjectResponse,
    ProjectUpdate,
)
from services import storage
from services.project_service import ProjectService

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Projects
# =============================================================================

@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """All projects for administrators, otherwise those the caller manages or belongs to."""
    return await ProjectService.from_session(session).list_projects_for(user)


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    request: ProjectCreate,
    user: User = Depends(require_roles("admin", permission="can_create_projects")),
    session: AsyncSession = Depends(get_session),
):
    project = await ProjectService.from_session(session).create_project(request.model_dump(), user.id)
    logger.info("Project created", project_id=project.id, user_id=user.id)
    return project


@router.post("/upload-image", response_model=ImageUploadResponse, status_code=201)
async def upload_project_image(
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles("admin", permission="can_edit_projects")),
):
    if image is None:
        raise HTTPException(status_code=400, detail="No image uploaded")

    saved = storage.save_image(image, storage.PROJECTS_DIR, "project-")
    logger.info("Project image stored", filename=saved["filename"], user_id=user.id)
    return saved


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectService.from_session(session).require_access(project_id, user)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    request: ProjectUpdate,
    _: User = Depends(require_roles("admin", permission="can_edit_projects")),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectService.from_session(session).update_project(
        project_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: int,
    user: User = Depends(require_roles("admin", permission="can_delete_projects")),
    session: AsyncSession = Depends(get_session),
):
    """Delete a project with its managers, members, document links and assignments."""
    await ProjectService.from_session(session).delete_project(project_id)
    logger.info("Project deleted", project_id=project_id, user_id=user.id)
    return Response(status_code=204)


# =============================================================================
# Managers
# =============================================================================

@router.get("/{project_id}/managers", response_model=List[ManagerWithUser])
async def list_managers(
    project_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_access(project_id, user)
    return await service.list_managers(project_id)


@router.post("/{project_id}/managers", response_model=ManagerResponse, status_code=201)
async def add_manager(
    project_id: int,
    request: ManagerCreate,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectService.from_session(session).add_manager(project_id, request.user_id, request.role)


@router.delete("/{project_id}/managers/{manager_id}", status_code=204)
async def remove_manager(
    project_id: int,
    manager_id: int,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await ProjectService.from_session(session).remove_manager(project_id, manager_id)
    return Response(status_code=204)


# =============================================================================
# Members
# =============================================================================

@router.get("/{project_id}/members", response_model=List[MemberWithUser])
async def list_members(
    project_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_access(project_id, user)
    return await service.list_members(project_id)


@router.post("/{project_id}/members", response_model=MemberResponse, status_code=201)
async def add_member(
    project_id: int,
    request: MemberCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_manager(project_id, user)
    return await service.add_member(
        project_id,
        request.user_id,
        added_by=user.id,
        role=request.role,
        permissions=request.permissions,
    )


@router.put("/{project_id}/members/{member_id}", response_model=MemberResponse)
async def update_member(
    project_id: int,
    member_id: int,
    request: MemberUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Only the member role and permission list can change."""
    service = ProjectService.from_session(session)
    await service.require_manager(project_id, user)
    return await service.update_member(project_id, member_id, role=request.role, permissions=request.permissions)


@router.delete("/{project_id}/members/{member_id}", status_code=204)
async def remove_member(
    project_id: int,
    member_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_manager(project_id, user)
    await service.remove_member(project_id, member_id)
    return Response(status_code=204)


# =============================================================================
# Documents
# =============================================================================

@router.get("/{project_id}/documents", response_model=List[ProjectDocumentWithDocument])
async def list_project_documents(
    project_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_access(project_id, user)
    return await service.list_documents(project_id)


@router.post("/{project_id}/documents", response_model=ProjectDocumentResponse, status_code=201)
async def add_project_document(
    project_id: int,
    request: ProjectDocumentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_manager(project_id, user)
    return await service.add_document(
        project_id,
        request.document_id,
        uploaded_by=user.id,
        document_type=request.document_type,
        description=request.description,
    )


@router.delete("/{project_id}/documents/{link_id}", status_code=204)
async def remove_project_document(
    project_id: int,
    link_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectService.from_session(session)
    await service.require_manager(project_id, user)
    await service.remove_document(project_id, link_id)
    return Response(status_code=204)
