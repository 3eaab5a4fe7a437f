"""
Equipment Router
================
Equipment types, the equipment inventory and equipment photos.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from dependencies import get_current_user, require_admin, require_roles
from logging_config import get_logger
from models import User
from schemas import (
    EquipmentCreate,
    EquipmentDetail,
    EquipmentResponse,
    EquipmentTypeCreate,
    EquipmentTypeResponse,
    EquipmentUpdate,
    ImageUploadResponse,
)
from services import storage
from services.equipment_service import EquipmentService

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Equipment Types
# =============================================================================

@router.get("/equipment-types", response_model=List[EquipmentTypeResponse])
async def list_equipment_types(
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).list_types()


@router.post("/equipment-types", response_model=EquipmentTypeResponse, status_code=201)
async def create_equipment_type(
    request: EquipmentTypeCreate,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).create_type(request.name, request.description)


@router.delete("/equipment-types/{type_id}", status_code=204)
async def delete_equipment_type(
    type_id: int,
    _: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Delete a type. Refused with 409 while equipment still uses it."""
    await EquipmentService.from_session(session).delete_type(type_id)
    return Response(status_code=204)


# =============================================================================
# Equipment
# =============================================================================

@router.get("/equipment", response_model=List[EquipmentResponse])
async def list_equipment(
    type_id: Optional[int] = None,
    status: Optional[str] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).list_equipment(type_id=type_id, status=status)


@router.get("/equipment/search", response_model=List[EquipmentResponse])
async def search_equipment(
    q: Optional[str] = None,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Match name, code or location."""
    return await EquipmentService.from_session(session).search_equipment(q or "")


@router.post("/equipment/upload-image", response_model=ImageUploadResponse, status_code=201)
async def upload_equipment_image(
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles("admin", "technician", permission="can_edit_equipment")),
):
    """
    Store an equipment photo.

    Only images up to the configured image size limit are accepted.
    """
    if image is None:
        raise HTTPException(status_code=400, detail="No image uploaded")

    saved = storage.save_image(image, storage.EQUIPMENT_DIR, "equipment-")
    logger.info("Equipment image stored", filename=saved["filename"], size=saved["size"], user_id=user.id)
    return saved


@router.post("/equipment", response_model=EquipmentResponse, status_code=201)
async def create_equipment(
    request: EquipmentCreate,
    _: User = Depends(require_roles("admin", "technician", permission="can_create_equipment")),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).create_equipment(request.model_dump())


@router.get("/equipment/{equipment_id}", response_model=EquipmentDetail)
async def get_equipment(
    equipment_id: int,
    _: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).get_equipment_detail(equipment_id)


@router.put("/equipment/{equipment_id}", response_model=EquipmentResponse)
async def update_equipment(
    equipment_id: int,
    request: EquipmentUpdate,
    _: User = Depends(require_roles("admin", "technician", permission="can_edit_equipment")),
    session: AsyncSession = Depends(get_session),
):
    return await EquipmentService.from_session(session).update_equipment(
        equipment_id, request.model_dump(exclude_unset=True)
    )


@router.delete("/equipment/{equipment_id}", status_code=204)
async def delete_equipment(
    equipment_id: int,
    _: User = Depends(require_roles("admin", permission="can_delete_equipment")),
    session: AsyncSession = Depends(get_session),
):
    await EquipmentService.from_session(session).delete_equipment(equipment_id)
    return Response(status_code=204)
