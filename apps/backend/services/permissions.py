"""
Permission Model
================
Built-in system roles and effective-permission resolution.

A user's permissions come from their custom role when one is assigned,
otherwise from the system role matching the legacy ``users.role`` column.
"""

from typing import Dict, Iterable, Optional

from models import PERMISSION_FLAGS, Role, User, UserRole

ADMINISTRATOR = "Administrator"
TECHNICIAN = "Technician"
BASIC_USER = "User"


def _flags(**granted: bool) -> Dict[str, bool]:
    flags = {flag: False for flag in PERMISSION_FLAGS}
    flags.update(granted)
    return flags


SYSTEM_ROLES: Dict[str, dict] = {
    ADMINISTRATOR: {
        "description": "Full access to every module",
        "permissions": {flag: True for flag in PERMISSION_FLAGS},
    },
    TECHNICIAN: {
        "description": "Manages equipment and maintenance, works with documents",
        "permissions": _flags(
            can_create_documents=True,
            can_view_documents=True,
            can_edit_documents=True,
            can_create_folders=True,
            can_view_folders=True,
            can_edit_folders=True,
            can_create_equipment=True,
            can_view_equipment=True,
            can_edit_equipment=True,
            can_schedule_maintenance=True,
            can_complete_maintenance=True,
            can_view_projects=True,
            can_manage_project_equipment=True,
        ),
    },
    BASIC_USER: {
        "description": "Creates and views documents and folders",
        "permissions": _flags(
            can_create_documents=True,
            can_view_documents=True,
            can_create_folders=True,
            can_view_folders=True,
            can_view_projects=True,
        ),
    },
}


def system_role_name_for(legacy_role: Optional[str]) -> str:
    """Map a legacy role column value to the name of its system role."""
    if legacy_role == UserRole.ADMIN.value:
        return ADMINISTRATOR
    if legacy_role == UserRole.TECHNICIAN.value:
        return TECHNICIAN
    return BASIC_USER


def effective_permissions(user: User, role: Optional[Role]) -> Dict[str, bool]:
    """
    Resolve the permission flags for a user.

    Args:
        user: The user
        role: The user's custom role, or the system fallback role. When None
            the built-in defaults for the legacy role are used.
    """
    if role is not None:
        return role.permissions()
    return dict(SYSTEM_ROLES[system_role_name_for(user.role)]["permissions"])


def is_allowed(
    user: User,
    permissions: Dict[str, bool],
    roles: Iterable[str] = (),
    permission: Optional[str] = None,
) -> bool:
    """True if the user's legacy role is listed or the permission flag is granted."""
    if user.role in set(roles):
        return True
    if permission is not None and permissions.get(permission, False):
        return True
    return False
