"""
Project Models
==============
Construction projects, their managers and members, attached documents and
equipment assignments.
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base, utcnow


class ProjectStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class ManagerRole(str, enum.Enum):
    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    LEAD = "lead"


class MemberRole(str, enum.Enum):
    MEMBER = "member"
    GUEST = "guest"
    OBSERVER = "observer"


class ProjectDocumentType(str, enum.Enum):
    CONTRACT = "contract"
    PERMIT = "permit"
    PLAN = "plan"
    INVOICE = "invoice"
    OTHER = "other"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    IN_USE = "in_use"
    RETURNED = "returned"


class Project(Base):
    """
    Project (construction site / job).

    Access for non-admins is granted through ProjectManager and
    ProjectMember rows.
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default=ProjectStatus.IN_PROGRESS.value)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)
    budget = Column(Numeric(14, 2), nullable=True)
    client_name = Column(String(255), nullable=True)
    client_contact = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"


class ProjectManager(Base):
    __tablename__ = "project_managers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(32), nullable=False, default=ManagerRole.MANAGER.value)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_managers_project_user"),
    )

    def __repr__(self):
        return f"<ProjectManager(project_id={self.project_id}, user_id={self.user_id})>"


class ProjectMember(Base):
    """Project membership. `permissions` is a list such as ["view", "edit"]."""
    __tablename__ = "project_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(32), nullable=False, default=MemberRole.MEMBER.value)
    permissions = Column(JSON, nullable=False, default=lambda: ["view"])
    added_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    def __repr__(self):
        return f"<ProjectMember(project_id={self.project_id}, user_id={self.user_id}, role='{self.role}')>"


class ProjectDocument(Base):
    """Link between a project and a stored document."""
    __tablename__ = "project_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    document_type = Column(String(32), nullable=False, default=ProjectDocumentType.OTHER.value)
    description = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ProjectDocument(project_id={self.project_id}, document_id={self.document_id})>"


class ProjectEquipment(Base):
    """
    Equipment assignment to a project.

    An assignment is current while `actual_return_date` is NULL and its
    status is not "returned". Shared assignments may overlap other current
    assignments of the same equipment.
    """
    __tablename__ = "project_equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False)
    assigned_date = Column(DateTime, default=utcnow, nullable=False)
    expected_return_date = Column(DateTime, nullable=True)
    actual_return_date = Column(DateTime, nullable=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(32), nullable=False, default=AssignmentStatus.ASSIGNED.value)
    notes = Column(Text, nullable=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    authorization_code = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_project_equipment_project_id", "project_id"),
        Index("ix_project_equipment_equipment_id", "equipment_id"),
    )

    @property
    def is_current(self) -> bool:
        return self.actual_return_date is None and self.status != AssignmentStatus.RETURNED.value

    def __repr__(self):
        return (
            f"<ProjectEquipment(id={self.id}, project_id={self.project_id}, "
            f"equipment_id={self.equipment_id}, status='{self.status}')>"
        )
