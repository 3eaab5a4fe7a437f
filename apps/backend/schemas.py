"""
AssetLogix - API Schemas
========================
Pydantic request/response models for the REST API.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


ORM = ConfigDict(from_attributes=True)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC; aware input is converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


# =============================================================================
# Users & Authentication
# =============================================================================

class UserResponse(BaseModel):
    """Public view of a user. The password hash is never included."""

    model_config = ORM

    id: int
    username: str
    email: str
    name: str
    role: str
    custom_role_id: Optional[int] = None
    status: str
    avatar: Optional[str] = None
    created_at: UTCDateTime


class UserSummary(BaseModel):
    """Compact user reference embedded in other resources."""

    model_config = ORM

    id: int
    username: str
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None


class UserWithPermissions(UserResponse):
    role_name: Optional[str] = Field(default=None, description="Name of the effective role")
    permissions: Dict[str, bool] = Field(default_factory=dict)


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=256)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(RegisterRequest):
    """Admin-side user creation, which may set role and status."""
    role: str = Field(default="user")
    status: str = Field(default="active")
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    expires_at: UTCDateTime
    user: UserResponse


class VerifyPasswordRequest(BaseModel):
    password: Optional[str] = None


class VerifyPasswordResponse(BaseModel):
    success: bool
    message: str


class UserRoleUpdate(BaseModel):
    role: str


class UserStatusUpdate(BaseModel):
    status: str


# =============================================================================
# Roles
# =============================================================================

class PermissionFlags(BaseModel):
    can_manage_users: bool = False
    can_manage_roles: bool = False
    can_create_documents: bool = True
    can_view_documents: bool = True
    can_edit_documents: bool = False
    can_delete_documents: bool = False
    can_create_folders: bool = True
    can_view_folders: bool = True
    can_edit_folders: bool = False
    can_delete_folders: bool = False
    can_create_equipment: bool = False
    can_view_equipment: bool = True
    can_edit_equipment: bool = False
    can_delete_equipment: bool = False
    can_schedule_maintenance: bool = False
    can_complete_maintenance: bool = False
    can_create_projects: bool = False
    can_view_projects: bool = True
    can_edit_projects: bool = False
    can_delete_projects: bool = False
    can_manage_project_equipment: bool = False


class RoleCreate(PermissionFlags):
    name: str = Field(..., max_length=100)
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    """Partial role update; omitted flags keep their value."""
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    can_manage_users: Optional[bool] = None
    can_manage_roles: Optional[bool] = None
    can_create_documents: Optional[bool] = None
    can_view_documents: Optional[bool] = None
    can_edit_documents: Optional[bool] = None
    can_delete_documents: Optional[bool] = None
    can_create_folders: Optional[bool] = None
    can_view_folders: Optional[bool] = None
    can_edit_folders: Optional[bool] = None
    can_delete_folders: Optional[bool] = None
    can_create_equipment: Optional[bool] = None
    can_view_equipment: Optional[bool] = None
    can_edit_equipment: Optional[bool] = None
    can_delete_equipment: Optional[bool] = None
    can_schedule_maintenance: Optional[bool] = None
    can_complete_maintenance: Optional[bool] = None
    can_create_projects: Optional[bool] = None
    can_view_projects: Optional[bool] = None
    can_edit_projects: Optional[bool] = None
    can_delete_projects: Optional[bool] = None
    can_manage_project_equipment: Optional[bool] = None


class RoleResponse(PermissionFlags):
    model_config = ORM

    id: int
    name: str
    description: Optional[str] = None
    is_system_role: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


# =============================================================================
# Folders
# =============================================================================

class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = None


class FolderUpdate(BaseModel):
    """Rename and/or move. An explicit null parent_id moves to the root."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    parent_id: Optional[int] = None


class FolderResponse(BaseModel):
    model_config = ORM

    id: int
    name: str
    path: str
    parent_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class FolderPermissionCreate(BaseModel):
    user_id: int
    can_view: bool = True
    can_edit: bool = False
    can_delete: bool = False
    can_share: bool = False
    is_owner: bool = False


class FolderPermissionUpdate(BaseModel):
    can_view: Optional[bool] = None
    can_edit: Optional[bool] = None
    can_delete: Optional[bool] = None
    can_share: Optional[bool] = None
    is_owner: Optional[bool] = None


class FolderPermissionResponse(BaseModel):
    model_config = ORM

    id: int
    folder_id: int
    user_id: int
    can_view: bool
    can_edit: bool
    can_delete: bool
    can_share: bool
    is_owner: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class FolderPermissionWithUser(FolderPermissionResponse):
    user: Optional[UserSummary] = None


class FolderAccessResponse(BaseModel):
    has_access: bool
    permissions: Optional[FolderPermissionResponse] = None


# =============================================================================
# Documents
# =============================================================================

class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    type: str = Field(default="unknown", max_length=50)
    original_extension: Optional[str] = None
    size: int = Field(default=0, ge=0)
    path: str = Field(..., min_length=1)
    folder_id: Optional[int] = None


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    type: Optional[str] = Field(default=None, max_length=50)
    folder_id: Optional[int] = None


class DocumentResponse(BaseModel):
    model_config = ORM

    id: int
    name: str
    description: Optional[str] = None
    type: str
    original_extension: Optional[str] = None
    size: int
    path: str
    folder_id: Optional[int] = None
    current_version: int
    created_by: Optional[int] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class UploadedFileInfo(BaseModel):
    original_name: str
    filename: str
    path: str
    size: int
    mimetype: Optional[str] = None


class DocumentUploadResponse(DocumentResponse):
    file_info: UploadedFileInfo


class PrepareUploadRequest(BaseModel):
    document_id: Optional[int] = None
    file_extension: str = Field(..., min_length=1, max_length=20)


class PrepareUploadResponse(BaseModel):
    filename: str
    upload_path: str


class VersionCreate(BaseModel):
    path: str = Field(..., min_length=1)
    size: int = Field(default=0, ge=0)


class VersionResponse(BaseModel):
    model_config = ORM

    id: int
    document_id: int
    version: int
    path: str
    size: int
    created_by: Optional[int] = None
    created_at: UTCDateTime


class ActivityCreate(BaseModel):
    action: str = Field(..., description="One of: upload, download, view, edit, delete, new_version")
    details: Optional[str] = None


class ActivityResponse(BaseModel):
    model_config = ORM

    id: int
    document_id: Optional[int] = None
    user_id: Optional[int] = None
    action: str
    details: Optional[str] = None
    timestamp: UTCDateTime


class ActivityWithContext(ActivityResponse):
    user: Optional[UserSummary] = None
    document: Optional[Dict[str, Any]] = None


# =============================================================================
# Equipment
# =============================================================================

EquipmentStatusValue = Literal["operational", "maintenance", "out_of_service"]


class EquipmentTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class EquipmentTypeResponse(BaseModel):
    model_config = ORM

    id: int
    name: str
    description: Optional[str] = None
    created_at: UTCDateTime


class EquipmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=100)
    type_id: Optional[int] = None
    status: EquipmentStatusValue = "operational"
    location: Optional[str] = None
    installation_date: Optional[UTCDateTime] = None
    specifications: Optional[Dict[str, Any]] = None
    photo: Optional[str] = None
    notes: Optional[str] = None


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type_id: Optional[int] = None
    status: Optional[EquipmentStatusValue] = None
    location: Optional[str] = None
    installation_date: Optional[UTCDateTime] = None
    specifications: Optional[Dict[str, Any]] = None
    photo: Optional[str] = None
    notes: Optional[str] = None


class EquipmentResponse(BaseModel):
    model_config = ORM

    id: int
    name: str
    code: str
    type_id: Optional[int] = None
    status: str
    location: Optional[str] = None
    installation_date: Optional[UTCDateTime] = None
    specifications: Optional[Dict[str, Any]] = None
    photo: Optional[str] = None
    notes: Optional[str] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class EquipmentSummary(BaseModel):
    model_config = ORM

    id: int
    name: str
    code: str
    status: str
    type_id: Optional[int] = None


class EquipmentDetail(EquipmentResponse):
    type: Optional[Dict[str, Any]] = None


class ImageUploadResponse(BaseModel):
    url: str
    filename: str
    size: int
    mimetype: str


class FileUploadResponse(BaseModel):
    filename: str
    original_name: str
    path: str
    url: str


# =============================================================================
# Maintenance
# =============================================================================

ScheduleTypeValue = Literal["preventive", "corrective"]
FrequencyValue = Literal["daily", "weekly", "monthly", "quarterly", "yearly"]
InterventionTypeValue = Literal["preventive", "corrective", "emergency"]
InterventionStatusValue = Literal["pending", "in_progress", "completed"]


class ScheduleCreate(BaseModel):
    equipment_id: int
    type: ScheduleTypeValue
    frequency: Optional[FrequencyValue] = None
    next_date: UTCDateTime
    description: Optional[str] = None
    reminder_days: int = Field(default=7, ge=0, le=365)


class ScheduleUpdate(BaseModel):
    type: Optional[ScheduleTypeValue] = None
    frequency: Optional[FrequencyValue] = None
    next_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    reminder_days: Optional[int] = Field(default=None, ge=0, le=365)


class ScheduleWithNotificationRequest(BaseModel):
    """Scheduling form payload. Required fields are checked by the handler."""
    type: Optional[ScheduleTypeValue] = None
    equipment_id: Optional[int] = None
    next_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    frequency: Optional[FrequencyValue] = None
    reminder_days: Optional[int] = Field(default=None, ge=0, le=365)
    send_email: bool = False


class ScheduleResponse(BaseModel):
    model_config = ORM

    id: int
    equipment_id: int
    type: str
    frequency: Optional[str] = None
    next_date: UTCDateTime
    description: Optional[str] = None
    reminder_days: int
    created_at: UTCDateTime
    updated_at: UTCDateTime


class ScheduleWithEquipment(ScheduleResponse):
    equipment: Optional[EquipmentSummary] = None


class ScheduleNotificationResponse(ScheduleResponse):
    email_sent: bool


class ScheduleCompleteRequest(BaseModel):
    findings: Optional[str] = None
    actions: Optional[str] = None
    parts: Optional[List[Any]] = None


class InterventionCreate(BaseModel):
    equipment_id: int
    schedule_id: Optional[int] = None
    type: InterventionTypeValue
    status: InterventionStatusValue = "pending"
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    findings: Optional[str] = None
    actions: Optional[str] = None
    parts: Optional[List[Any]] = None


class InterventionUpdate(BaseModel):
    type: Optional[InterventionTypeValue] = None
    status: Optional[InterventionStatusValue] = None
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    findings: Optional[str] = None
    actions: Optional[str] = None
    parts: Optional[List[Any]] = None


class InterventionResponse(BaseModel):
    model_config = ORM

    id: int
    equipment_id: int
    schedule_id: Optional[int] = None
    type: str
    status: str
    start_date: UTCDateTime
    end_date: Optional[UTCDateTime] = None
    technician: Optional[int] = None
    findings: Optional[str] = None
    actions: Optional[str] = None
    parts: Optional[List[Any]] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class AttachmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    path: str = Field(..., min_length=1)
    type: Optional[str] = None
    size: int = Field(default=0, ge=0)


class AttachmentResponse(BaseModel):
    model_config = ORM

    id: int
    intervention_id: int
    name: str
    path: str
    type: Optional[str] = None
    size: int
    uploaded_by: Optional[int] = None
    created_at: UTCDateTime


class InterventionWithContext(InterventionResponse):
    equipment: Optional[EquipmentSummary] = None
    technician_data: Optional[UserSummary] = None
    attachments: Optional[List[AttachmentResponse]] = None


class ScheduleCompleteResponse(BaseModel):
    schedule: ScheduleResponse
    intervention: InterventionResponse


class ReminderDispatchResponse(BaseModel):
    checked: int
    due: int
    sent: int
    failed: int


# =============================================================================
# Projects
# =============================================================================

ProjectStatusValue = Literal["in_progress", "completed", "on_hold", "cancelled"]
ManagerRoleValue = Literal["manager", "supervisor", "lead"]
MemberRoleValue = Literal["member", "guest", "observer"]
ProjectDocumentTypeValue = Literal["contract", "permit", "plan", "invoice", "other"]


def parse_budget(value: Union[str, float, int, Decimal, None]) -> Optional[Decimal]:
    """Accept "1,250,000.50" style input as well as numbers."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid budget: {value!r}") from e


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = None
    status: ProjectStatusValue = "in_progress"
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    budget: Optional[Decimal] = None
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    image: Optional[str] = None

    @field_validator("budget", mode="before")
    @classmethod
    def strip_budget_separators(cls, v):
        return parse_budget(v)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = None
    status: Optional[ProjectStatusValue] = None
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    budget: Optional[Decimal] = None
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    image: Optional[str] = None

    @field_validator("budget", mode="before")
    @classmethod
    def strip_budget_separators(cls, v):
        return parse_budget(v)


class ProjectResponse(BaseModel):
    model_config = ORM

    id: int
    name: str
    location: Optional[str] = None
    status: str
    start_date: Optional[UTCDateTime] = None
    end_date: Optional[UTCDateTime] = None
    description: Optional[str] = None
    budget: Optional[Decimal] = None
    client_name: Optional[str] = None
    client_contact: Optional[str] = None
    image: Optional[str] = None
    created_by: Optional[int] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class ManagerCreate(BaseModel):
    user_id: int
    role: ManagerRoleValue = "manager"


class ManagerResponse(BaseModel):
    model_config = ORM

    id: int
    project_id: int
    user_id: int
    role: str
    created_at: UTCDateTime


class ManagerWithUser(ManagerResponse):
    user: Optional[UserSummary] = None


class MemberCreate(BaseModel):
    user_id: int
    role: MemberRoleValue = "member"
    permissions: List[str] = Field(default_factory=lambda: ["view"])


class MemberUpdate(BaseModel):
    role: Optional[MemberRoleValue] = None
    permissions: Optional[List[str]] = None


class MemberResponse(BaseModel):
    model_config = ORM

    id: int
    project_id: int
    user_id: int
    role: str
    permissions: List[str]
    added_by: Optional[int] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class MemberWithUser(MemberResponse):
    user: Optional[UserSummary] = None


class ProjectDocumentCreate(BaseModel):
    document_id: int
    document_type: ProjectDocumentTypeValue = "other"
    description: Optional[str] = None


class ProjectDocumentResponse(BaseModel):
    model_config = ORM

    id: int
    project_id: int
    document_id: int
    document_type: str
    description: Optional[str] = None
    uploaded_by: Optional[int] = None
    created_at: UTCDateTime


class ProjectDocumentWithDocument(ProjectDocumentResponse):
    document: Optional[DocumentResponse] = None


# =============================================================================
# Project Equipment Assignments
# =============================================================================

AssignmentStatusValue = Literal["assigned", "in_use", "returned"]


class AssignmentCreate(BaseModel):
    project_id: int
    equipment_id: int
    expected_return_date: Optional[UTCDateTime] = None
    status: Literal["assigned", "in_use"] = "assigned"
    notes: Optional[str] = None
    is_shared: bool = False
    authorization_code: Optional[str] = Field(default=None, max_length=100)


class AssignmentUpdate(BaseModel):
    status: Optional[AssignmentStatusValue] = None
    notes: Optional[str] = None
    expected_return_date: Optional[UTCDateTime] = None
    actual_return_date: Optional[UTCDateTime] = None
    is_shared: Optional[bool] = None


class AssignmentReturn(BaseModel):
    notes: Optional[str] = None


class AssignmentResponse(BaseModel):
    model_config = ORM

    id: int
    project_id: int
    equipment_id: int
    assigned_date: UTCDateTime
    expected_return_date: Optional[UTCDateTime] = None
    actual_return_date: Optional[UTCDateTime] = None
    assigned_by: Optional[int] = None
    status: str
    notes: Optional[str] = None
    is_shared: bool
    authorization_code: Optional[str] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class AssignmentWithContext(AssignmentResponse):
    equipment: Optional[EquipmentSummary] = None
    assigned_by_user: Optional[UserSummary] = None
    project_name: Optional[str] = None


# =============================================================================
# Comments, Tasks & Reactions
# =============================================================================

TaskStatusValue = Literal["pending", "in_progress", "completed"]
TaskPriorityValue = Literal["low", "medium", "high", "urgent"]


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    document_id: Optional[int] = None
    equipment_id: Optional[int] = None
    maintenance_id: Optional[int] = None
    parent_id: Optional[int] = None


class CommentResponse(BaseModel):
    model_config = ORM

    id: int
    content: str
    user_id: int
    document_id: Optional[int] = None
    equipment_id: Optional[int] = None
    maintenance_id: Optional[int] = None
    parent_id: Optional[int] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatusValue = "pending"
    priority: TaskPriorityValue = "medium"
    due_date: Optional[UTCDateTime] = None
    assigned_to: Optional[int] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatusValue] = None
    priority: Optional[TaskPriorityValue] = None
    due_date: Optional[UTCDateTime] = None
    assigned_to: Optional[int] = None


class TaskResponse(BaseModel):
    model_config = ORM

    id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[UTCDateTime] = None
    assigned_to: Optional[int] = None
    created_by: Optional[int] = None
    completed_at: Optional[UTCDateTime] = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class ReactionToggle(BaseModel):
    emoji: Optional[str] = Field(default=None, max_length=32)
    comment_id: Optional[int] = None
    task_id: Optional[int] = None


class ReactionResponse(BaseModel):
    model_config = ORM

    id: int
    emoji: str
    user_id: int
    comment_id: Optional[int] = None
    task_id: Optional[int] = None
    created_at: UTCDateTime


class ReactionToggleResponse(BaseModel):
    success: bool
    added: bool
    reaction: Optional[ReactionResponse] = None


class ReactionSummary(BaseModel):
    emoji: str
    count: int
    selected: bool


# =============================================================================
# System
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    services: dict


class StorageCheckResponse(BaseModel):
    checked: int
    healthy: int
    missing: int
    errors: List[Dict[str, Any]]


class MessageResponse(BaseModel):
    message: str
