"""
Roles Router
============
Custom permission roles. The seeded system roles are read-only.
"""

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_roles
from logging_config import get_logger
from models import User
from schemas import RoleCreate, RoleResponse, RoleUpdate
from services.role_service import RoleService

logger = get_logger(__name__)

router = APIRouter()

manage_roles = require_roles("admin", permission="can_manage_roles")


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await RoleService.from_session(session).list_roles()


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await RoleService.from_session(session).require_role(role_id)


@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    request: RoleCreate,
    _: User = Depends(manage_roles),
    session: AsyncSession = Depends(get_session),
):
    data = request.model_dump()
    name = data.pop("name")
    description = data.pop("description")
    return await RoleService.from_session(session).create_role(name, description, **data)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    request: RoleUpdate,
    _: User = Depends(manage_roles),
    session: AsyncSession = Depends(get_session),
):
    return await RoleService.from_session(session).update_role(role_id, request.model_dump(exclude_unset=True))


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: int,
    user: User = Depends(manage_roles),
    session: AsyncSession = Depends(get_session),
):
    await RoleService.from_session(session).delete_role(role_id)
    logger.info("Role deleted", role_id=role_id, user_id=user.id)
    return Response(status_code=204)
