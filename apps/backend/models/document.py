"""
Document Models
===============
Folders, per-user folder permissions, documents, their versions and the
document activity (audit) log.
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
    UniqueConstraint,
)

from .base import Base, utcnow


class DocumentAction(str, enum.Enum):
    """Audit log action names."""
    UPLOAD = "upload"
    DOWNLOAD = "download"
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    NEW_VERSION = "new_version"


class Folder(Base):
    """
    Document folder.

    `path` is the slash-joined chain of folder names from the root and is
    recomputed whenever a folder is renamed or moved.
    """
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    parent_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_folders_parent_id", "parent_id"),
    )

    def __repr__(self):
        return f"<Folder(id={self.id}, path='{self.path}')>"


class FolderPermission(Base):
    """Explicit folder grant for a single user."""
    __tablename__ = "folder_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    can_view = Column(Boolean, nullable=False, default=True)
    can_edit = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)
    can_share = Column(Boolean, nullable=False, default=False)
    is_owner = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("folder_id", "user_id", name="uq_folder_permissions_folder_user"),
    )

    def __repr__(self):
        return f"<FolderPermission(folder_id={self.folder_id}, user_id={self.user_id})>"


class Document(Base):
    """
    Stored document.

    Attributes:
        type: Detected kind (pdf, word, autocad, ...)
        original_extension: Kept only for CAD/3D formats whose extension
            must survive download
        path: Location of the current version relative to the upload root
        current_version: Latest version number, starting at 1
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False, default="unknown")
    original_extension = Column(String(20), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    path = Column(Text, nullable=False)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="SET NULL"), nullable=True)
    current_version = Column(Integer, nullable=False, default=1)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_documents_folder_id", "folder_id"),
        Index("ix_documents_name", "name"),
    )

    def __repr__(self):
        return f"<Document(id={self.id}, name='{self.name}', v={self.current_version})>"


class DocumentVersion(Base):
    __tablename__ = "document_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False)
    path = Column(Text, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("document_id", "version", name="uq_document_versions_doc_version"),
    )

    def __repr__(self):
        return f"<DocumentVersion(document_id={self.document_id}, version={self.version})>"


class DocumentActivity(Base):
    """
    Document audit entry.

    `document_id` is nulled when the document is deleted so the delete
    entry itself survives.
    """
    __tablename__ = "document_activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(32), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_document_activity_document_id", "document_id"),
        Index("ix_document_activity_timestamp", "timestamp"),
    )

    def __repr__(self):
        return f"<DocumentActivity(document_id={self.document_id}, action='{self.action}')>"
