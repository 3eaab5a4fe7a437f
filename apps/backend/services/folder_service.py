"""
Folder Service
==============
Folder tree operations and per-user folder permissions.

Folder paths are materialised (``Projects/2024/Site A``) and rewritten for
the whole subtree whenever a folder is renamed or moved.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select

from exceptions import NotFoundError, PermissionDeniedError, ValidationError
from models import Document, Folder, FolderPermission, User, row_to_dict
from services.base import BaseService
from services.document_service import DocumentService

logger = logging.getLogger(__name__)

PERMISSION_FIELDS = ("can_view", "can_edit", "can_delete", "can_share", "is_owner")
_UNSET = object()


def build_path(name: str, parent: Optional[Folder]) -> str:
    return f"{parent.path}/{name}" if parent is not None else name


class FolderService(BaseService):
    """
    Usage:
        service = FolderService.from_session(session)
        folder = await service.create_folder("Contracts", parent_id=None, user_id=1)
    """

    # =========================================================================
    # Tree Queries
    # =========================================================================

    async def list_folders(self, parent_id: Optional[int] = None) -> List[Folder]:
        """Direct children of `parent_id`, or the root folders when None."""
        stmt = select(Folder)
        if parent_id is None:
            stmt = stmt.where(Folder.parent_id.is_(None))
        else:
            stmt = stmt.where(Folder.parent_id == parent_id)
        result = await self._session.execute(stmt.order_by(Folder.name))
        return list(result.scalars().all())

    async def list_all(self) -> List[Folder]:
        result = await self._session.execute(select(Folder).order_by(Folder.path))
        return list(result.scalars().all())

    async def get_folder(self, folder_id: int) -> Optional[Folder]:
        return await self._session.get(Folder, folder_id)

    async def require_folder(self, folder_id: int) -> Folder:
        folder = await self.get_folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)
        return folder

    async def get_breadcrumb(self, folder_id: int) -> List[Folder]:
        """Folders from the root down to `folder_id` inclusive."""
        chain: List[Folder] = []
        seen = set()
        current = await self.require_folder(folder_id)

        while current is not None and current.id not in seen:
            seen.add(current.id)
            chain.append(current)
            current = await self.get_folder(current.parent_id) if current.parent_id else None

        chain.reverse()
        return chain

    async def descendant_ids(self, folder_id: int) -> List[int]:
        """Ids of every folder below `folder_id` (breadth first, excluding itself)."""
        found: List[int] = []
        frontier = [folder_id]
        while frontier:
            result = await self._session.execute(
                select(Folder.id).where(Folder.parent_id.in_(frontier))
            )
            frontier = [fid for fid in result.scalars().all() if fid not in found]
            found.extend(frontier)
        return found

    # =========================================================================
    # Tree Mutations
    # =========================================================================

    async def create_folder(self, name: str, parent_id: Optional[int], user_id: Optional[int]) -> Folder:
        """
        Create a folder and give its creator an owner grant.

        Raises:
            ValidationError: Blank name
            NotFoundError: Unknown parent
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name is required", field="name")

        parent = await self.require_folder(parent_id) if parent_id is not None else None

        folder = Folder(
            name=name,
            parent_id=parent.id if parent else None,
            path=build_path(name, parent),
            created_by=user_id,
        )
        self._session.add(folder)
        await self._flush("Could not create folder", resource="folder")

        if user_id is not None:
            self._session.add(FolderPermission(
                folder_id=folder.id,
                user_id=user_id,
                can_view=True,
                can_edit=True,
                can_delete=True,
                can_share=True,
                is_owner=True,
            ))
            await self._flush("Could not grant owner permission", resource="folder_permission")

        logger.info(f"Created folder: id={folder.id}, path={folder.path}")
        return folder

    async def update_folder(self, folder_id: int, name: Optional[str] = None, parent_id: Any = _UNSET) -> Folder:
        """
        Rename and/or move a folder, rewriting paths below it.

        Args:
            parent_id: New parent id, None for the root, or omitted to stay put

        Raises:
            ValidationError: Blank name, or a move into the folder's own subtree
        """
        folder = await self.require_folder(folder_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Folder name is required", field="name")
            folder.name = name

        if parent_id is not _UNSET:
            if parent_id is not None:
                if parent_id == folder.id or parent_id in await self.descendant_ids(folder.id):
                    raise ValidationError(
                        "A folder cannot be moved into itself or one of its subfolders",
                        field="parent_id",
                        value=parent_id,
                    )
                await self.require_folder(parent_id)
            folder.parent_id = parent_id

        parent = await self.get_folder(folder.parent_id) if folder.parent_id else None
        folder.path = build_path(folder.name, parent)
        await self._rewrite_descendant_paths(folder)

        await self._session.flush()
        logger.info(f"Updated folder: id={folder.id}, path={folder.path}")
        return folder

    async def delete_folder(self, folder_id: int, user_id: Optional[int] = None) -> Dict[str, int]:
        """
        Delete a folder, its subfolders and every document inside them.

        Stored files (including version files) are removed from disk.

        Returns:
            Counts of deleted folders and documents
        """
        await self.require_folder(folder_id)
        folder_ids = [folder_id] + await self.descendant_ids(folder_id)

        result = await self._session.execute(
            select(Document.id).where(Document.folder_id.in_(folder_ids))
        )
        document_ids = list(result.scalars().all())

        documents = DocumentService.from_session(self._session)
        for document_id in document_ids:
            await documents.delete_document(document_id, user_id=user_id)

        # Deepest first so no parent disappears before its children
        for fid in reversed(folder_ids):
            folder = await self.get_folder(fid)
            if folder is not None:
                await self._session.delete(folder)
                await self._session.flush()

        logger.info(
            f"Deleted folder: id={folder_id}, folders={len(folder_ids)}, documents={len(document_ids)}"
        )
        return {"folders": len(folder_ids), "documents": len(document_ids)}

    async def _rewrite_descendant_paths(self, root: Folder) -> None:
        frontier = [root]
        while frontier:
            parent = frontier.pop(0)
            result = await self._session.execute(select(Folder).where(Folder.parent_id == parent.id))
            for child in result.scalars().all():
                child.path = build_path(child.name, parent)
                frontier.append(child)

    # =========================================================================
    # Permissions
    # =========================================================================

    async def get_permission(self, folder_id: int, user_id: int) -> Optional[FolderPermission]:
        result = await self._session.execute(
            select(FolderPermission).where(
                FolderPermission.folder_id == folder_id,
                FolderPermission.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_permissions(self, folder_id: int) -> List[Dict[str, Any]]:
        """Grants on a folder, each with a compact user record."""
        await self.require_folder(folder_id)
        result = await self._session.execute(
            select(FolderPermission, User)
            .join(User, User.id == FolderPermission.user_id)
            .where(FolderPermission.folder_id == folder_id)
            .order_by(FolderPermission.id)
        )
        entries = []
        for permission, user in result.all():
            entry = row_to_dict(permission)
            entry["user"] = {"id": user.id, "username": user.username, "name": user.name, "email": user.email}
            entries.append(entry)
        return entries

    async def list_user_permissions(self, user_id: int) -> List[FolderPermission]:
        result = await self._session.execute(
            select(FolderPermission).where(FolderPermission.user_id == user_id)
        )
        return list(result.scalars().all())

    async def check_access(self, folder_id: int, user: User) -> Tuple[bool, Optional[FolderPermission]]:
        """
        Whether a user may view a folder.

        Access comes from a direct view grant, the admin role, or view access
        on any ancestor folder.
        """
        folder = await self.require_folder(folder_id)
        permission = await self.get_permission(folder_id, user.id)

        if permission is not None and permission.can_view:
            return True, permission
        if user.is_admin:
            return True, permission

        seen = {folder.id}
        parent_id = folder.parent_id
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            inherited = await self.get_permission(parent_id, user.id)
            if inherited is not None and inherited.can_view:
                return True, permission
            parent = await self.get_folder(parent_id)
            parent_id = parent.parent_id if parent else None

        return False, permission

    async def can_manage_permissions(self, folder_id: int, user: User, sharing: bool = False) -> bool:
        """Owner or admin; with `sharing`, holders of can_share also qualify."""
        if user.is_admin:
            return True
        permission = await self.get_permission(folder_id, user.id)
        if permission is None:
            return False
        return bool(permission.is_owner or (sharing and permission.can_share))

    async def grant_permission(self, folder_id: int, user_id: int, **flags: bool) -> FolderPermission:
        """
        Raises:
            NotFoundError: Unknown folder or user
            ConflictError: The user already has a grant on this folder
        """
        await self.require_folder(folder_id)
        if await self._session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        permission = FolderPermission(
            folder_id=folder_id,
            user_id=user_id,
            **{k: v for k, v in flags.items() if k in PERMISSION_FIELDS},
        )
        self._session.add(permission)
        await self._flush("User already has permissions on this folder", resource="folder_permission")
        return permission

    async def update_permission(self, folder_id: int, user_id: int, changes: Dict[str, Any]) -> FolderPermission:
        permission = await self.get_permission(folder_id, user_id)
        if permission is None:
            raise NotFoundError("Folder permission", f"{folder_id}/{user_id}")

        for key, value in changes.items():
            if key in PERMISSION_FIELDS and value is not None:
                setattr(permission, key, value)
        await self._session.flush()
        return permission

    async def revoke_permission(self, folder_id: int, user_id: int) -> bool:
        permission = await self.get_permission(folder_id, user_id)
        if permission is None:
            raise NotFoundError("Folder permission", f"{folder_id}/{user_id}")
        await self._session.delete(permission)
        await self._session.flush()
        return True

    async def require_manage(self, folder_id: int, user: User, sharing: bool = False) -> None:
        await self.require_folder(folder_id)
        if not await self.can_manage_permissions(folder_id, user, sharing=sharing):
            raise PermissionDeniedError(
                "Not allowed to manage permissions for this folder",
                action="manage_folder_permissions",
                user_id=user.id,
            )
