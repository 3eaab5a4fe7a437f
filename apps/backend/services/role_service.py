"""
Role Service
============
CRUD for permission roles. System roles are read-only.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from exceptions import NotFoundError, PermissionDeniedError, ValidationError
from models import PERMISSION_FLAGS, Role
from services.base import BaseService

logger = logging.getLogger(__name__)

MIN_ROLE_NAME_LENGTH = 3
EDITABLE_FIELDS = ("name", "description") + PERMISSION_FLAGS


class RoleService(BaseService):

    async def list_roles(self) -> List[Role]:
        result = await self._session.execute(select(Role).order_by(Role.id))
        return list(result.scalars().all())

    async def get_role(self, role_id: int) -> Optional[Role]:
        return await self._session.get(Role, role_id)

    async def require_role(self, role_id: int) -> Role:
        role = await self.get_role(role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    async def create_role(self, name: str, description: Optional[str] = None, **flags: bool) -> Role:
        """
        Create a custom role.

        Raises:
            ValidationError: Name shorter than three characters
            ConflictError: A role with the same name exists (400)
        """
        name = (name or "").strip()
        if len(name) < MIN_ROLE_NAME_LENGTH:
            raise ValidationError(
                f"Role name must be at least {MIN_ROLE_NAME_LENGTH} characters", field="name", value=name
            )

        unknown = set(flags) - set(PERMISSION_FLAGS)
        if unknown:
            raise ValidationError(f"Unknown permission flags: {', '.join(sorted(unknown))}")

        role = Role(name=name, description=description, is_system_role=False, **flags)
        self._session.add(role)
        await self._flush(f"Role '{name}' already exists", resource="role", status_code=400)

        logger.info(f"Created role: id={role.id}, name={name}")
        return role

    async def update_role(self, role_id: int, changes: Dict[str, Any]) -> Role:
        """
        Apply a partial update.

        Raises:
            NotFoundError: Unknown role
            PermissionDeniedError: System role
        """
        role = await self.require_role(role_id)
        if role.is_system_role:
            raise PermissionDeniedError("System roles cannot be modified", action="update_role")

        if "name" in changes and len((changes["name"] or "").strip()) < MIN_ROLE_NAME_LENGTH:
            raise ValidationError(
                f"Role name must be at least {MIN_ROLE_NAME_LENGTH} characters", field="name"
            )

        for key, value in changes.items():
            if key in EDITABLE_FIELDS and value is not None:
                setattr(role, key, value.strip() if key == "name" else value)

        await self._flush(f"Role '{role.name}' already exists", resource="role", status_code=400)
        return role

    async def delete_role(self, role_id: int) -> bool:
        """Delete a custom role. Users holding it fall back to their system role."""
        role = await self.require_role(role_id)
        if role.is_system_role:
            raise PermissionDeniedError("System roles cannot be deleted", action="delete_role")

        await self._session.delete(role)
        await self._session.flush()
        logger.info(f"Deleted role: id={role_id}")
        return True
