"""
Equipment Service
=================
Equipment inventory and equipment types.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select

from exceptions import ConflictError, NotFoundError, ValidationError
from models import (
    Equipment,
    EquipmentStatus,
    EquipmentType,
    MaintenanceAttachment,
    MaintenanceIntervention,
    row_to_dict,
)
from services import storage
from services.base import BaseService

logger = logging.getLogger(__name__)

VALID_STATUSES = tuple(s.value for s in EquipmentStatus)
EDITABLE_FIELDS = (
    "name", "code", "type_id", "status", "location",
    "installation_date", "specifications", "photo", "notes",
)


class EquipmentService(BaseService):
    """
    Usage:
        service = EquipmentService.from_session(session)
        pump = await service.create_equipment({"name": "Pump", "code": "EQ-001"})
    """

    # =========================================================================
    # Equipment Types
    # =========================================================================

    async def list_types(self) -> List[EquipmentType]:
        result = await self._session.execute(select(EquipmentType).order_by(EquipmentType.name))
        return list(result.scalars().all())

    async def create_type(self, name: str, description: Optional[str] = None) -> EquipmentType:
        equipment_type = EquipmentType(name=name.strip(), description=description)
        self._session.add(equipment_type)
        await self._flush(
            f"Equipment type '{name}' already exists", resource="equipment_type", status_code=400
        )
        logger.info(f"Created equipment type: id={equipment_type.id}, name={name}")
        return equipment_type

    async def delete_type(self, type_id: int) -> bool:
        """
        Raises:
            NotFoundError: Unknown type
            ConflictError: Equipment still references the type
        """
        equipment_type = await self._session.get(EquipmentType, type_id)
        if equipment_type is None:
            raise NotFoundError("Equipment type", type_id)

        in_use = await self._session.scalar(
            select(func.count(Equipment.id)).where(Equipment.type_id == type_id)
        )
        if in_use:
            raise ConflictError(
                f"Equipment type is used by {in_use} equipment item(s)", resource="equipment_type"
            )

        await self._session.delete(equipment_type)
        await self._session.flush()
        return True

    # =========================================================================
    # Equipment
    # =========================================================================

    async def list_equipment(self, type_id: Optional[int] = None, status: Optional[str] = None) -> List[Equipment]:
        stmt = select(Equipment)
        if type_id is not None:
            stmt = stmt.where(Equipment.type_id == type_id)
        if status:
            stmt = stmt.where(Equipment.status == status)
        result = await self._session.execute(stmt.order_by(Equipment.name))
        return list(result.scalars().all())

    async def search_equipment(self, query: str) -> List[Equipment]:
        """Case-insensitive match on name, code or location."""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required", field="q")

        pattern = f"%{query.lower()}%"
        stmt = select(Equipment).where(or_(
            func.lower(Equipment.name).like(pattern),
            func.lower(Equipment.code).like(pattern),
            func.lower(func.coalesce(Equipment.location, "")).like(pattern),
        ))
        result = await self._session.execute(stmt.order_by(Equipment.name))
        return list(result.scalars().all())

    async def get_equipment(self, equipment_id: int) -> Optional[Equipment]:
        return await self._session.get(Equipment, equipment_id)

    async def require_equipment(self, equipment_id: int) -> Equipment:
        equipment = await self.get_equipment(equipment_id)
        if equipment is None:
            raise NotFoundError("Equipment", equipment_id)
        return equipment

    async def get_equipment_detail(self, equipment_id: int) -> Dict[str, Any]:
        """Equipment columns plus ``type: {id, name}``."""
        equipment = await self.require_equipment(equipment_id)
        data = row_to_dict(equipment)

        equipment_type = (
            await self._session.get(EquipmentType, equipment.type_id) if equipment.type_id else None
        )
        data["type"] = {"id": equipment_type.id, "name": equipment_type.name} if equipment_type else None
        return data

    async def create_equipment(self, data: Dict[str, Any]) -> Equipment:
        """
        Raises:
            ValidationError: Invalid status
            NotFoundError: Unknown equipment type
            ConflictError: Duplicate code (400)
        """
        await self._check(data)
        equipment = Equipment(**{k: v for k, v in data.items() if k in EDITABLE_FIELDS})
        self._session.add(equipment)
        await self._flush(
            f"Equipment code '{data.get('code')}' already exists", resource="equipment", status_code=400
        )
        logger.info(f"Created equipment: id={equipment.id}, code={equipment.code}")
        return equipment

    async def update_equipment(self, equipment_id: int, changes: Dict[str, Any]) -> Equipment:
        equipment = await self.require_equipment(equipment_id)
        await self._check(changes)

        for key, value in changes.items():
            if key in EDITABLE_FIELDS:
                setattr(equipment, key, value)

        await self._flush(
            f"Equipment code '{changes.get('code')}' already exists", resource="equipment", status_code=400
        )
        return equipment

    async def set_status(self, equipment_id: int, status: str) -> Optional[Equipment]:
        """Set the status if the equipment exists. Returns None otherwise."""
        equipment = await self.get_equipment(equipment_id)
        if equipment is None:
            return None
        if equipment.status != status:
            equipment.status = status
            await self._session.flush()
            logger.info(f"Equipment status changed: id={equipment_id}, status={status}")
        return equipment

    async def delete_equipment(self, equipment_id: int) -> bool:
        equipment = await self.require_equipment(equipment_id)
        attachment_paths = (await self._session.scalars(
            select(MaintenanceAttachment.path)
            .join(MaintenanceIntervention, MaintenanceAttachment.intervention_id == MaintenanceIntervention.id)
            .where(MaintenanceIntervention.equipment_id == equipment_id)
        )).all()
        await self._session.delete(equipment)
        await self._session.flush()
        # Attachment rows go with the cascade, their files do not
        for path in attachment_paths:
            storage.remove_file(path)
        logger.info(f"Deleted equipment: id={equipment_id}, attachments={len(attachment_paths)}")
        return True

    async def _check(self, data: Dict[str, Any]) -> None:
        status = data.get("status")
        if status is not None and status not in VALID_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}", field="status", value=status
            )
        type_id = data.get("type_id")
        if type_id is not None and await self._session.get(EquipmentType, type_id) is None:
            raise NotFoundError("Equipment type", type_id)
