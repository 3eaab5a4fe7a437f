"""
Project Equipment Service
=========================
Assignment of equipment to projects.

An assignment is *current* until it is returned. Equipment with a current
assignment can only be assigned again as a shared assignment, which needs
an authorization code.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

import metrics as app_metrics
from exceptions import NotFoundError, ValidationError
from models import (
    AssignmentStatus,
    Equipment,
    Project,
    ProjectEquipment,
    User,
    row_to_dict,
    utcnow,
)
from services.base import BaseService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "notes", "expected_return_date", "actual_return_date", "is_shared")
ASSIGNMENT_STATUSES = tuple(s.value for s in AssignmentStatus)


def current_filter():
    """SQL condition matching assignments that have not been returned."""
    return (
        ProjectEquipment.actual_return_date.is_(None),
        ProjectEquipment.status != AssignmentStatus.RETURNED.value,
    )


class ProjectEquipmentService(BaseService):
    """
    Usage:
        service = ProjectEquipmentService.from_session(session)
        assignment = await service.assign({"project_id": 1, "equipment_id": 4}, user_id=2)
    """

    def _enriched_query(self):
        return (
            select(ProjectEquipment, Equipment, User, Project.name)
            .join(Equipment, Equipment.id == ProjectEquipment.equipment_id)
            .join(Project, Project.id == ProjectEquipment.project_id)
            .outerjoin(User, User.id == ProjectEquipment.assigned_by)
        )

    @staticmethod
    def _entry(assignment: ProjectEquipment, equipment: Equipment, assigner: Optional[User], project_name: str) -> Dict[str, Any]:
        entry = row_to_dict(assignment)
        entry["equipment"] = {
            "id": equipment.id,
            "name": equipment.name,
            "code": equipment.code,
            "status": equipment.status,
            "type_id": equipment.type_id,
        }
        entry["assigned_by_user"] = (
            {"id": assigner.id, "username": assigner.username, "name": assigner.name, "avatar": assigner.avatar}
            if assigner else None
        )
        entry["project_name"] = project_name
        return entry

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_for_project(self, project_id: int) -> List[Dict[str, Any]]:
        """Assignments of a project, newest first, with equipment and assigner."""
        if await self._session.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)

        result = await self._session.execute(
            self._enriched_query()
            .where(ProjectEquipment.project_id == project_id)
            .order_by(ProjectEquipment.assigned_date.desc(), ProjectEquipment.id.desc())
        )
        return [self._entry(*row) for row in result.all()]

    async def get_assignment(self, assignment_id: int) -> Optional[ProjectEquipment]:
        return await self._session.get(ProjectEquipment, assignment_id)

    async def require_assignment(self, assignment_id: int) -> ProjectEquipment:
        assignment = await self.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Project equipment assignment", assignment_id)
        return assignment

    async def get_assignment_detail(self, assignment_id: int) -> Dict[str, Any]:
        result = await self._session.execute(
            self._enriched_query().where(ProjectEquipment.id == assignment_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Project equipment assignment", assignment_id)
        return self._entry(*row)

    async def current_assignments(self, equipment_id: int) -> List[Dict[str, Any]]:
        result = await self._session.execute(
            self._enriched_query()
            .where(ProjectEquipment.equipment_id == equipment_id, *current_filter())
            .order_by(ProjectEquipment.assigned_date.desc(), ProjectEquipment.id.desc())
        )
        return [self._entry(*row) for row in result.all()]

    async def assignment_history(self, equipment_id: int) -> List[Dict[str, Any]]:
        result = await self._session.execute(
            self._enriched_query()
            .where(ProjectEquipment.equipment_id == equipment_id)
            .order_by(ProjectEquipment.assigned_date.desc(), ProjectEquipment.id.desc())
        )
        return [self._entry(*row) for row in result.all()]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def assign(self, data: Dict[str, Any], user_id: Optional[int]) -> ProjectEquipment:
        """
        Assign equipment to a project.

        Raises:
            NotFoundError: Unknown project or equipment
            ValidationError: Equipment already assigned and the new assignment
                is not shared, or a shared assignment without authorization code
        """
        project_id = data["project_id"]
        equipment_id = data["equipment_id"]

        if await self._session.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)
        if await self._session.get(Equipment, equipment_id) is None:
            raise NotFoundError("Equipment", equipment_id)

        is_shared = bool(data.get("is_shared"))
        authorization_code = (data.get("authorization_code") or "").strip() or None

        if is_shared and authorization_code is None:
            raise ValidationError(
                "Shared assignments require an authorization code", field="authorization_code"
            )

        current = await self._session.execute(
            select(ProjectEquipment.id).where(ProjectEquipment.equipment_id == equipment_id, *current_filter())
        )
        if current.first() is not None and not is_shared:
            raise ValidationError(
                "Equipment is already assigned to a project. Use a shared assignment with an authorization code.",
                field="equipment_id",
                value=equipment_id,
            )

        status = data.get("status") or AssignmentStatus.ASSIGNED.value
        if status not in (AssignmentStatus.ASSIGNED.value, AssignmentStatus.IN_USE.value):
            raise ValidationError("New assignments must be 'assigned' or 'in_use'", field="status", value=status)

        assignment = ProjectEquipment(
            project_id=project_id,
            equipment_id=equipment_id,
            assigned_date=utcnow(),
            expected_return_date=data.get("expected_return_date"),
            assigned_by=user_id,
            status=status,
            notes=data.get("notes"),
            is_shared=is_shared,
            authorization_code=authorization_code,
        )
        self._session.add(assignment)
        await self._flush("Could not create assignment", resource="project_equipment")

        app_metrics.equipment_assignments_total.labels(event="shared" if is_shared else "assigned").inc()
        logger.info(
            f"Assigned equipment: id={assignment.id}, equipment_id={equipment_id}, "
            f"project_id={project_id}, shared={is_shared}"
        )
        return assignment

    async def update_assignment(self, assignment_id: int, changes: Dict[str, Any]) -> ProjectEquipment:
        """Update the whitelisted fields; anything else is ignored."""
        assignment = await self.require_assignment(assignment_id)

        status = changes.get("status")
        if status is not None and status not in ASSIGNMENT_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(ASSIGNMENT_STATUSES)}", field="status", value=status
            )

        for key, value in changes.items():
            if key in UPDATABLE_FIELDS:
                setattr(assignment, key, value)
        await self._session.flush()
        return assignment

    async def return_equipment(self, assignment_id: int, notes: Optional[str] = None) -> ProjectEquipment:
        """
        Close an assignment.

        Raises:
            ValidationError: Already returned
        """
        assignment = await self.require_assignment(assignment_id)
        if not assignment.is_current:
            raise ValidationError("Equipment has already been returned", field="status")

        assignment.status = AssignmentStatus.RETURNED.value
        assignment.actual_return_date = utcnow()
        if notes:
            assignment.notes = notes
        await self._session.flush()

        app_metrics.equipment_assignments_total.labels(event="returned").inc()
        logger.info(f"Equipment returned: assignment_id={assignment_id}")
        return assignment

    async def delete_assignment(self, assignment_id: int) -> bool:
        assignment = await self.require_assignment(assignment_id)
        await self._session.delete(assignment)
        await self._session.flush()
        return True
