"""
Project Equipment Router
========================
Assignment of equipment to projects, returns and assignment history.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_admin, require_staff
from logging_config import get_logger
from models import User
from schemas import (
    AssignmentCreate,
    AssignmentResponse,
    AssignmentReturn,
    AssignmentUpdate,
    AssignmentWithContext,
)
from services.project_equipment_service import ProjectEquipmentService
from services.project_service import ProjectService

logger = get_logger(__name__)

router = APIRouter()


@router.get("/project/{project_id}", response_model=List[AssignmentWithContext])
async def list_project_equipment(
    project_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Assignments of a project. Visible to administrators, managers and members."""
    await ProjectService.from_session(session).require_access(project_id, user)
    return await ProjectEquipmentService.from_session(session).list_for_project(project_id)


@router.get("/equipment/{equipment_id}/current", response_model=List[AssignmentWithContext])
async def current_assignments(
    equipment_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectEquipmentService.from_session(session).current_assignments(equipment_id)


@router.get("/equipment/{equipment_id}/history", response_model=List[AssignmentWithContext])
async def assignment_history(
    equipment_id: int,
    _: User = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectEquipmentService.from_session(session).assignment_history(equipment_id)


@router.get("/{assignment_id}", response_model=AssignmentWithContext)
async def get_assignment(
    assignment_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await ProjectEquipmentService.from_session(session).get_assignment_detail(assignment_id)


@router.post("", response_model=AssignmentResponse, status_code=201)
async def assign_equipment(
    request: AssignmentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Assign equipment to a project.

    Equipment already out on a project can only be added again as a shared
    assignment carrying an authorization code.
    """
    await ProjectService.from_session(session).require_manager(request.project_id, user)
    return await ProjectEquipmentService.from_session(session).assign(request.model_dump(), user.id)


@router.put("/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    assignment_id: int,
    request: AssignmentUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = ProjectEquipmentService.from_session(session)
    assignment = await service.require_assignment(assignment_id)
    await ProjectService.from_session(session).require_manager(assignment.project_id, user)
    return await service.update_assignment(assignment_id, request.model_dump(exclude_unset=True))


@router.post("/{assignment_id}/return", response_model=AssignmentResponse)
async def return_equipment(
    assignment_id: int,
    request: Optional[AssignmentReturn] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Close an assignment. Notes are replaced only when provided."""
    service = ProjectEquipmentService.from_session(session)
    assignment = await service.require_assignment(assignment_id)
    await ProjectService.from_session(session).require_manager(assignment.project_id, user)
    return await service.return_equipment(assignment_id, notes=request.notes if request else None)


@router.delete("/{assignment_id}", status_code=204)
async def delete_assignment(
    assignment_id: int,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await ProjectEquipmentService.from_session(session).delete_assignment(assignment_id)
    return Response(status_code=204)
