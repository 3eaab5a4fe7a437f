"""
Collaboration Router
====================
Comments on documents, equipment and interventions; tasks; emoji reactions.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user
from logging_config import get_logger
from models import User
from schemas import (
    CommentCreate,
    CommentResponse,
    ReactionResponse,
    ReactionSummary,
    ReactionToggle,
    ReactionToggleResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from services.collaboration_service import CollaborationService

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Comments
# =============================================================================

@router.get("/comments", response_model=List[CommentResponse])
async def list_comments(
    document_id: Optional[int] = None,
    equipment_id: Optional[int] = None,
    maintenance_id: Optional[int] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).list_comments(
        document_id=document_id,
        equipment_id=equipment_id,
        maintenance_id=maintenance_id,
    )


@router.post("/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    request: CommentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Comment on exactly one document, equipment item or intervention."""
    return await CollaborationService.from_session(session).add_comment(user_id=user.id, **request.model_dump())


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await CollaborationService.from_session(session).delete_comment(comment_id, user)
    return Response(status_code=204)


# =============================================================================
# Tasks
# =============================================================================

@router.get("/tasks", response_model=List[TaskResponse])
async def list_tasks(
    assigned_to: Optional[int] = None,
    status: Optional[str] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).list_tasks(assigned_to=assigned_to, status=status)


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: TaskCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).create_task(request.model_dump(), user.id)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    request: TaskUpdate,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).update_task(
        task_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await CollaborationService.from_session(session).delete_task(task_id, user)
    return Response(status_code=204)


# =============================================================================
# Reactions
# =============================================================================

@router.post("/reactions/toggle", response_model=ReactionToggleResponse)
async def toggle_reaction(
    request: ReactionToggle,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Add the caller's reaction, or take it back if it is already there."""
    reaction = await CollaborationService.from_session(session).toggle_reaction(
        user.id,
        request.emoji,
        comment_id=request.comment_id,
        task_id=request.task_id,
    )
    return ReactionToggleResponse(
        success=True,
        added=reaction is not None,
        reaction=ReactionResponse.model_validate(reaction) if reaction is not None else None,
    )


@router.get("/reactions/comments/{comment_id}", response_model=List[ReactionSummary])
async def comment_reactions(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).formatted_reactions(user.id, comment_id=comment_id)


@router.get("/reactions/tasks/{task_id}", response_model=List[ReactionSummary])
async def task_reactions(
    task_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CollaborationService.from_session(session).formatted_reactions(user.id, task_id=task_id)
