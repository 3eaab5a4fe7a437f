"""
User & Role Models
==================
Accounts, permission roles and server-side login sessions.
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from .base import Base, utcnow


class UserRole(str, enum.Enum):
    """Legacy role column values."""
    ADMIN = "admin"
    USER = "user"
    TECHNICIAN = "technician"
    MANAGER = "manager"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    PENDING = "pending"


PERMISSION_FLAGS = (
    "can_manage_users",
    "can_manage_roles",
    "can_create_documents",
    "can_view_documents",
    "can_edit_documents",
    "can_delete_documents",
    "can_create_folders",
    "can_view_folders",
    "can_edit_folders",
    "can_delete_folders",
    "can_create_equipment",
    "can_view_equipment",
    "can_edit_equipment",
    "can_delete_equipment",
    "can_schedule_maintenance",
    "can_complete_maintenance",
    "can_create_projects",
    "can_view_projects",
    "can_edit_projects",
    "can_delete_projects",
    "can_manage_project_equipment",
)


class Role(Base):
    """
    Permission role.

    System roles are seeded by the schema patcher and cannot be changed
    through the API. Custom roles are created by administrators.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    can_manage_users = Column(Boolean, nullable=False, default=False)
    can_manage_roles = Column(Boolean, nullable=False, default=False)

    can_create_documents = Column(Boolean, nullable=False, default=True)
    can_view_documents = Column(Boolean, nullable=False, default=True)
    can_edit_documents = Column(Boolean, nullable=False, default=False)
    can_delete_documents = Column(Boolean, nullable=False, default=False)

    can_create_folders = Column(Boolean, nullable=False, default=True)
    can_view_folders = Column(Boolean, nullable=False, default=True)
    can_edit_folders = Column(Boolean, nullable=False, default=False)
    can_delete_folders = Column(Boolean, nullable=False, default=False)

    can_create_equipment = Column(Boolean, nullable=False, default=False)
    can_view_equipment = Column(Boolean, nullable=False, default=True)
    can_edit_equipment = Column(Boolean, nullable=False, default=False)
    can_delete_equipment = Column(Boolean, nullable=False, default=False)

    can_schedule_maintenance = Column(Boolean, nullable=False, default=False)
    can_complete_maintenance = Column(Boolean, nullable=False, default=False)

    can_create_projects = Column(Boolean, nullable=False, default=False)
    can_view_projects = Column(Boolean, nullable=False, default=True)
    can_edit_projects = Column(Boolean, nullable=False, default=False)
    can_delete_projects = Column(Boolean, nullable=False, default=False)
    can_manage_project_equipment = Column(Boolean, nullable=False, default=False)

    is_system_role = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def permissions(self) -> dict:
        return {flag: bool(getattr(self, flag)) for flag in PERMISSION_FLAGS}

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}', system={self.is_system_role})>"


class User(Base):
    """Application account. Passwords are stored as scrypt hashes."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=UserRole.USER.value)
    custom_role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(32), nullable=False, default=UserStatus.ACTIVE.value)
    avatar = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


class AuthSession(Base):
    """
    Server-side login session.

    Only a keyed HMAC-SHA256 digest of the bearer token is stored.
    """
    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_auth_sessions_user_id", "user_id"),
        Index("ix_auth_sessions_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<AuthSession(id={self.id}, user_id={self.user_id})>"
