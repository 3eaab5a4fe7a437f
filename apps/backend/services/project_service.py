"""
Project Service
===============
Projects with their managers, members and attached documents.

Administrators see every project; anyone else sees the projects where
they are a manager or a member.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select

from exceptions import NotFoundError, PermissionDeniedError, ValidationError
from models import (
    Document,
    ManagerRole,
    MemberRole,
    Project,
    ProjectDocument,
    ProjectDocumentType,
    ProjectManager,
    ProjectMember,
    ProjectStatus,
    User,
    row_to_dict,
)
from services.base import BaseService

logger = logging.getLogger(__name__)

PROJECT_FIELDS = (
    "name", "location", "status", "start_date", "end_date", "description",
    "budget", "client_name", "client_contact", "image",
)
MANAGER_ROLES = tuple(r.value for r in ManagerRole)
MEMBER_ROLES = tuple(r.value for r in MemberRole)
DOCUMENT_TYPES = tuple(t.value for t in ProjectDocumentType)
PROJECT_STATUSES = tuple(s.value for s in ProjectStatus)


def _user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "avatar": user.avatar,
    }


def _check_choice(value: Optional[str], choices: tuple, field: str) -> None:
    if value is not None and value not in choices:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(choices)}", field=field, value=value)


class ProjectService(BaseService):
    """
    Usage:
        service = ProjectService.from_session(session)
        projects = await service.list_projects_for(user)
    """

    # =========================================================================
    # Projects
    # =========================================================================

    async def list_projects_for(self, user: User) -> List[Project]:
        stmt = select(Project).order_by(Project.created_at.desc(), Project.id.desc())
        if not user.is_admin:
            member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == user.id)
            manager_of = select(ProjectManager.project_id).where(ProjectManager.user_id == user.id)
            stmt = stmt.where(or_(Project.id.in_(member_of), Project.id.in_(manager_of)))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_project(self, project_id: int) -> Optional[Project]:
        return await self._session.get(Project, project_id)

    async def require_project(self, project_id: int) -> Project:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def create_project(self, data: Dict[str, Any], user_id: Optional[int]) -> Project:
        _check_choice(data.get("status"), PROJECT_STATUSES, "status")
        values = {k: v for k, v in data.items() if k in PROJECT_FIELDS and v is not None}
        project = Project(created_by=user_id, **values)
        self._session.add(project)
        await self._flush("Could not create project", resource="project")

        logger.info(f"Created project: id={project.id}, name={project.name}")
        return project

    async def update_project(self, project_id: int, changes: Dict[str, Any]) -> Project:
        project = await self.require_project(project_id)
        _check_choice(changes.get("status"), PROJECT_STATUSES, "status")

        for key, value in changes.items():
            if key in PROJECT_FIELDS:
                setattr(project, key, value)
        await self._session.flush()
        return project

    async def delete_project(self, project_id: int) -> bool:
        """Delete a project. Managers, members, document links and assignments cascade."""
        project = await self.require_project(project_id)
        await self._session.delete(project)
        await self._session.flush()
        logger.info(f"Deleted project: id={project_id}")
        return True

    # =========================================================================
    # Access
    # =========================================================================

    async def is_manager(self, project_id: int, user_id: int) -> bool:
        found = await self._session.scalar(
            select(ProjectManager.id).where(
                ProjectManager.project_id == project_id,
                ProjectManager.user_id == user_id,
            )
        )
        return found is not None

    async def is_member(self, project_id: int, user_id: int) -> bool:
        found = await self._session.scalar(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        return found is not None

    async def has_access(self, project_id: int, user: User) -> bool:
        if user.is_admin:
            return True
        return await self.is_manager(project_id, user.id) or await self.is_member(project_id, user.id)

    async def require_access(self, project_id: int, user: User) -> Project:
        project = await self.require_project(project_id)
        if not await self.has_access(project_id, user):
            raise PermissionDeniedError(
                "You do not have access to this project", action="view_project", user_id=user.id
            )
        return project

    async def require_manager(self, project_id: int, user: User) -> Project:
        """Admin or project manager."""
        project = await self.require_project(project_id)
        if not user.is_admin and not await self.is_manager(project_id, user.id):
            raise PermissionDeniedError(
                "Only administrators or project managers can do this",
                action="manage_project",
                user_id=user.id,
            )
        return project

    # =========================================================================
    # Managers
    # =========================================================================

    async def list_managers(self, project_id: int) -> List[Dict[str, Any]]:
        await self.require_project(project_id)
        result = await self._session.execute(
            select(ProjectManager, User)
            .join(User, User.id == ProjectManager.user_id)
            .where(ProjectManager.project_id == project_id)
            .order_by(ProjectManager.id)
        )
        entries = []
        for manager, user in result.all():
            entry = row_to_dict(manager)
            entry["user"] = _user_summary(user)
            entries.append(entry)
        return entries

    async def add_manager(self, project_id: int, user_id: int, role: str = ManagerRole.MANAGER.value) -> ProjectManager:
        """
        Raises:
            ValidationError: Invalid manager role
            NotFoundError: Unknown project or user
            ConflictError: User already manages the project
        """
        _check_choice(role, MANAGER_ROLES, "role")
        await self.require_project(project_id)
        if await self._session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        manager = ProjectManager(project_id=project_id, user_id=user_id, role=role)
        self._session.add(manager)
        await self._flush("User is already a manager of this project", resource="project_manager")
        return manager

    async def remove_manager(self, project_id: int, manager_id: int) -> bool:
        manager = await self._session.get(ProjectManager, manager_id)
        if manager is None or manager.project_id != project_id:
            raise NotFoundError("Project manager", manager_id)
        await self._session.delete(manager)
        await self._session.flush()
        return True

    # =========================================================================
    # Members
    # =========================================================================

    async def list_members(self, project_id: int) -> List[Dict[str, Any]]:
        result = await self._session.execute(
            select(ProjectMember, User)
            .join(User, User.id == ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.id)
        )
        entries = []
        for member, user in result.all():
            entry = row_to_dict(member)
            entry["user"] = _user_summary(user)
            entries.append(entry)
        return entries

    async def add_member(
        self,
        project_id: int,
        user_id: int,
        added_by: Optional[int],
        role: str = MemberRole.MEMBER.value,
        permissions: Optional[List[str]] = None,
    ) -> ProjectMember:
        _check_choice(role, MEMBER_ROLES, "role")
        await self.require_project(project_id)
        if await self._session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        member = ProjectMember(
            project_id=project_id,
            user_id=user_id,
            role=role,
            permissions=list(permissions) if permissions is not None else ["view"],
            added_by=added_by,
        )
        self._session.add(member)
        await self._flush("User is already a member of this project", resource="project_member")
        return member

    async def update_member(
        self,
        project_id: int,
        member_id: int,
        role: Optional[str] = None,
        permissions: Optional[List[str]] = None,
    ) -> ProjectMember:
        """Only the member role and permission list can change."""
        member = await self._require_member(project_id, member_id)
        _check_choice(role, MEMBER_ROLES, "role")

        if role is not None:
            member.role = role
        if permissions is not None:
            member.permissions = list(permissions)
        await self._session.flush()
        return member

    async def remove_member(self, project_id: int, member_id: int) -> bool:
        member = await self._require_member(project_id, member_id)
        await self._session.delete(member)
        await self._session.flush()
        return True

    async def _require_member(self, project_id: int, member_id: int) -> ProjectMember:
        member = await self._session.get(ProjectMember, member_id)
        if member is None or member.project_id != project_id:
            raise NotFoundError("Project member", member_id)
        return member

    # =========================================================================
    # Documents
    # =========================================================================

    async def list_documents(self, project_id: int) -> List[Dict[str, Any]]:
        await self.require_project(project_id)
        result = await self._session.execute(
            select(ProjectDocument, Document)
            .join(Document, Document.id == ProjectDocument.document_id)
            .where(ProjectDocument.project_id == project_id)
            .order_by(ProjectDocument.created_at.desc(), ProjectDocument.id.desc())
        )
        entries = []
        for link, document in result.all():
            entry = row_to_dict(link)
            entry["document"] = row_to_dict(document)
            entries.append(entry)
        return entries

    async def add_document(
        self,
        project_id: int,
        document_id: int,
        uploaded_by: Optional[int],
        document_type: str = ProjectDocumentType.OTHER.value,
        description: Optional[str] = None,
    ) -> ProjectDocument:
        _check_choice(document_type, DOCUMENT_TYPES, "document_type")
        await self.require_project(project_id)
        if await self._session.get(Document, document_id) is None:
            raise NotFoundError("Document", document_id)

        link = ProjectDocument(
            project_id=project_id,
            document_id=document_id,
            document_type=document_type,
            description=description,
            uploaded_by=uploaded_by,
        )
        self._session.add(link)
        await self._flush("Could not attach document", resource="project_document")
        return link

    async def remove_document(self, project_id: int, link_id: int) -> bool:
        link = await self._session.get(ProjectDocument, link_id)
        if link is None or link.project_id != project_id:
            raise NotFoundError("Project document", link_id)
        await self._session.delete(link)
        await self._session.flush()
        return True
