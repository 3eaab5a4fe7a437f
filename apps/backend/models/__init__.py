"""
Database Models
===============
SQLAlchemy models for the AssetLogix backend.
"""

from .base import Base, utcnow, row_to_dict
from .user import (
    PERMISSION_FLAGS,
    AuthSession,
    Role,
    User,
    UserRole,
    UserStatus,
)
from .document import (
    Document,
    DocumentAction,
    DocumentActivity,
    DocumentVersion,
    Folder,
    FolderPermission,
)
from .equipment import (
    Equipment,
    EquipmentStatus,
    EquipmentType,
    Frequency,
    InterventionStatus,
    InterventionType,
    MaintenanceAttachment,
    MaintenanceIntervention,
    MaintenanceSchedule,
    ScheduleType,
)
from .project import (
    AssignmentStatus,
    ManagerRole,
    MemberRole,
    Project,
    ProjectDocument,
    ProjectDocumentType,
    ProjectEquipment,
    ProjectManager,
    ProjectMember,
    ProjectStatus,
)
from .collaboration import Comment, Reaction, Task, TaskPriority, TaskStatus

__all__ = [
    "Base", "utcnow", "row_to_dict",
    "PERMISSION_FLAGS", "AuthSession", "Role", "User", "UserRole", "UserStatus",
    "Document", "DocumentAction", "DocumentActivity", "DocumentVersion",
    "Folder", "FolderPermission",
    "Equipment", "EquipmentStatus", "EquipmentType", "Frequency",
    "InterventionStatus", "InterventionType", "MaintenanceAttachment",
    "MaintenanceIntervention", "MaintenanceSchedule", "ScheduleType",
    "AssignmentStatus", "ManagerRole", "MemberRole", "Project", "ProjectDocument",
    "ProjectDocumentType", "ProjectEquipment", "ProjectManager", "ProjectMember",
    "ProjectStatus",
    "Comment", "Reaction", "Task", "TaskPriority", "TaskStatus",
]
