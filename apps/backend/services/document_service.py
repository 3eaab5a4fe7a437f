"""
Document Service
================
Document records, their version history and the activity (audit) log.

The database is the source of truth for metadata; file bytes live under the
upload directory and are referenced by relative path.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select

import metrics as app_metrics
from exceptions import NotFoundError, StorageError, ValidationError
from models import (
    Document,
    DocumentAction,
    DocumentActivity,
    DocumentVersion,
    Folder,
    User,
    row_to_dict,
)
from services.base import BaseService
from services import storage

logger = logging.getLogger(__name__)

AUTOCAD_EXTENSIONS = (".dwg", ".dxf", ".dwf")
REVIT_EXTENSIONS = (".rvt", ".rfa", ".rte", ".rft")
PRESERVED_EXTENSIONS = AUTOCAD_EXTENSIONS + REVIT_EXTENSIONS + (".skp", ".3ds", ".max")

TYPE_BY_EXTENSION: Dict[str, str] = {
    ".pdf": "pdf",
    ".doc": "word", ".docx": "word", ".odt": "word",
    ".xls": "excel", ".xlsx": "excel", ".ods": "excel",
    ".ppt": "powerpoint", ".pptx": "powerpoint", ".odp": "powerpoint",
    ".txt": "text", ".md": "text",
    **{ext: "autocad" for ext in AUTOCAD_EXTENSIONS},
    **{ext: "revit" for ext in REVIT_EXTENSIONS},
}

VALID_ACTIONS = tuple(a.value for a in DocumentAction)


def file_extension(filename: Optional[str]) -> str:
    """Extension including the dot, as typed (``"Plan.DWG"`` -> ``".DWG"``)."""
    if not filename:
        return ""
    return os.path.splitext(filename)[1]


def preserved_extension(filename: Optional[str]) -> Optional[str]:
    """The extension to keep on download, for CAD/3D formats only."""
    ext = file_extension(filename)
    return ext if ext.lower() in PRESERVED_EXTENSIONS else None


def detect_document_type(filename: Optional[str], mimetype: Optional[str] = None) -> str:
    if mimetype and mimetype.startswith("image/"):
        return "image"
    return TYPE_BY_EXTENSION.get(file_extension(filename).lower(), "unknown")


def download_name(document: Document) -> str:
    """
    Filename offered to the browser.

    CAD formats get their original extension back; other documents get
    ``.<type>`` when the name does not already mention it.
    """
    name = document.name
    if document.original_extension:
        if not name.lower().endswith(document.original_extension.lower()):
            name = f"{name}{document.original_extension}"
    elif document.type and f".{document.type.lower()}" not in name.lower():
        name = f"{name}.{document.type}"
    return name


class DocumentService(BaseService):
    """
    Usage:
        async with DocumentService(db_url) as service:
            docs = await service.list_documents(folder_id=3)

    Or with an existing session:
        service = DocumentService.from_session(session)
    """

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_documents(self, folder_id: Optional[int] = None) -> List[Document]:
        """Documents in a folder, or the unfiled documents when None."""
        stmt = select(Document)
        if folder_id is None:
            stmt = stmt.where(Document.folder_id.is_(None))
        else:
            stmt = stmt.where(Document.folder_id == folder_id)
        result = await self._session.execute(stmt.order_by(Document.created_at.desc(), Document.id.desc()))
        return list(result.scalars().all())

    async def search_documents(self, query: str) -> List[Document]:
        """Case-insensitive substring match on name or description."""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required", field="q")

        pattern = f"%{query.lower()}%"
        stmt = (
            select(Document)
            .where(or_(
                func.lower(Document.name).like(pattern),
                func.lower(func.coalesce(Document.description, "")).like(pattern),
            ))
            .order_by(Document.name)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_document(self, document_id: int) -> Optional[Document]:
        return await self._session.get(Document, document_id)

    async def require_document(self, document_id: int) -> Document:
        document = await self.get_document(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_document(
        self,
        name: str,
        path: str,
        user_id: Optional[int],
        size: int = 0,
        type: Optional[str] = None,
        description: Optional[str] = None,
        folder_id: Optional[int] = None,
        original_extension: Optional[str] = None,
        mimetype: Optional[str] = None,
    ) -> Document:
        """
        Create a document record for a file that is already stored.

        Version 1 is recorded and an ``upload`` activity is logged.
        """
        if folder_id is not None and await self._session.get(Folder, folder_id) is None:
            raise NotFoundError("Folder", folder_id)

        if not type or type == "unknown":
            type = detect_document_type(name, mimetype)

        document = Document(
            name=name,
            description=description,
            type=type,
            original_extension=original_extension or preserved_extension(name),
            size=size,
            path=path,
            folder_id=folder_id,
            current_version=1,
            created_by=user_id,
        )
        self._session.add(document)
        await self._flush("Could not create document", resource="document")

        self._session.add(DocumentVersion(
            document_id=document.id,
            version=1,
            path=path,
            size=size,
            created_by=user_id,
        ))
        await self.log_activity(document.id, user_id, DocumentAction.UPLOAD.value, f"Document {name} uploaded")

        logger.info(f"Created document: id={document.id}, name={name}, type={type}")
        return document

    async def update_document(
        self,
        document_id: int,
        changes: Dict[str, Any],
        user_id: Optional[int] = None,
        log: bool = True,
    ) -> Document:
        """Apply field changes. PUT logs an ``edit`` activity, PATCH does not."""
        document = await self.require_document(document_id)

        if changes.get("folder_id") is not None and await self._session.get(Folder, changes["folder_id"]) is None:
            raise NotFoundError("Folder", changes["folder_id"])

        for key in ("name", "description", "type", "folder_id"):
            if key in changes:
                setattr(document, key, changes[key])

        await self._session.flush()
        if log:
            await self.log_activity(
                document.id, user_id, DocumentAction.EDIT.value, f"Document {document.name} updated"
            )
        return document

    async def delete_document(self, document_id: int, user_id: Optional[int] = None) -> bool:
        """
        Delete a document, its versions and their stored files.

        The ``delete`` activity entry is kept, detached from the document.
        """
        document = await self.require_document(document_id)

        result = await self._session.execute(
            select(DocumentVersion.path).where(DocumentVersion.document_id == document_id)
        )
        paths = set(result.scalars().all())
        paths.add(document.path)

        removed = sum(1 for path in paths if storage.remove_file(path))

        name = document.name
        await self._session.delete(document)
        await self._session.flush()

        await self.log_activity(
            None, user_id, DocumentAction.DELETE.value, f"Document {name} (id={document_id}) deleted"
        )
        logger.info(f"Deleted document: id={document_id}, files_removed={removed}")
        return True

    # =========================================================================
    # Versions
    # =========================================================================

    async def list_versions(self, document_id: int) -> List[DocumentVersion]:
        await self.require_document(document_id)
        result = await self._session.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version.desc())
        )
        return list(result.scalars().all())

    async def create_version(
        self,
        document_id: int,
        path: str,
        size: int,
        user_id: Optional[int],
    ) -> DocumentVersion:
        """Add version ``current_version + 1`` and make it current."""
        document = await self.require_document(document_id)
        next_version = document.current_version + 1

        version = DocumentVersion(
            document_id=document_id,
            version=next_version,
            path=path,
            size=size,
            created_by=user_id,
        )
        self._session.add(version)

        document.path = path
        document.size = size
        document.current_version = next_version
        await self._flush("Version already exists", resource="document_version")

        await self.log_activity(
            document_id,
            user_id,
            DocumentAction.NEW_VERSION.value,
            f"New version {next_version} created for document {document.name}",
        )
        return version

    async def prepare_upload(self, file_extension: str, document_id: Optional[int] = None) -> Dict[str, str]:
        """Reserve a storage filename for a direct upload."""
        ext = storage.sanitize_extension(file_extension)
        if not ext:
            raise ValidationError("File extension is required", field="file_extension")

        ts = storage.timestamp_ms()
        if document_id is not None:
            document = await self.require_document(document_id)
            filename = f"document_{document.id}_v{document.current_version + 1}_{ts}{ext}"
        else:
            filename = f"document_new_{ts}{ext}"

        return {
            "filename": filename,
            "upload_path": f"{storage.DOCUMENTS_DIR}/{filename}",
        }

    # =========================================================================
    # Activity
    # =========================================================================

    async def log_activity(
        self,
        document_id: Optional[int],
        user_id: Optional[int],
        action: str,
        details: Optional[str] = None,
    ) -> DocumentActivity:
        if action not in VALID_ACTIONS:
            raise ValidationError(
                f"Invalid action. Must be one of: {', '.join(VALID_ACTIONS)}", field="action", value=action
            )

        activity = DocumentActivity(
            document_id=document_id,
            user_id=user_id,
            action=action,
            details=details,
        )
        self._session.add(activity)
        await self._session.flush()

        app_metrics.document_activity_total.labels(action=action).inc()
        return activity

    async def recent_activity(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Newest entries, each with a compact user and document record."""
        stmt = (
            select(DocumentActivity, User, Document)
            .outerjoin(User, User.id == DocumentActivity.user_id)
            .outerjoin(Document, Document.id == DocumentActivity.document_id)
            .order_by(DocumentActivity.timestamp.desc(), DocumentActivity.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._enrich(activity, user, document) for activity, user, document in result.all()]

    async def document_activity(self, document_id: int) -> List[Dict[str, Any]]:
        await self.require_document(document_id)
        stmt = (
            select(DocumentActivity, User)
            .outerjoin(User, User.id == DocumentActivity.user_id)
            .where(DocumentActivity.document_id == document_id)
            .order_by(DocumentActivity.timestamp.desc(), DocumentActivity.id.desc())
        )
        result = await self._session.execute(stmt)
        return [self._enrich(activity, user) for activity, user in result.all()]

    @staticmethod
    def _enrich(activity: DocumentActivity, user: Optional[User], document: Optional[Document] = None) -> Dict[str, Any]:
        entry = row_to_dict(activity)
        entry["user"] = (
            {"id": user.id, "name": user.name, "username": user.username, "avatar": user.avatar}
            if user else None
        )
        entry["document"] = (
            {"id": document.id, "name": document.name, "type": document.type}
            if document else None
        )
        return entry

    # =========================================================================
    # Consistency Check
    # =========================================================================

    async def storage_check(self) -> Dict[str, Any]:
        """
        Verify that every document's current file exists on disk.

        Documents with missing files are reported, never deleted.

        Returns:
            Dict with statistics:
            - checked: Total documents checked
            - healthy: Documents with existing files
            - missing: Documents whose file is gone
            - errors: Details per missing or unreadable document
        """
        stats: Dict[str, Any] = {"checked": 0, "healthy": 0, "missing": 0, "errors": []}

        result = await self._session.execute(select(Document).order_by(Document.id))
        documents = list(result.scalars().all())
        stats["checked"] = len(documents)

        for doc in documents:
            try:
                exists = storage.resolve_stored_path(doc.path).is_file()
            except StorageError as e:
                stats["errors"].append({"doc_id": doc.id, "name": doc.name, "path": doc.path, "error": e.message})
                stats["missing"] += 1
                continue

            if exists:
                stats["healthy"] += 1
            else:
                stats["missing"] += 1
                stats["errors"].append({
                    "doc_id": doc.id,
                    "name": doc.name,
                    "path": doc.path,
                    "error": "File missing",
                })
                logger.warning(f"Storage check: file missing for doc_id={doc.id}, path={doc.path}")

        logger.info(
            f"Storage check complete: checked={stats['checked']}, "
            f"healthy={stats['healthy']}, missing={stats['missing']}"
        )
        return stats
