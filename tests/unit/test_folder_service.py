"""
Unit Tests - Folder Tree and Folder Permissions
===============================================
"""

import pytest
from sqlalchemy import func, select

from exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from models import Document, Folder
from services import storage
from services.document_service import DocumentService
from services.folder_service import FolderService

pytestmark = pytest.mark.unit


@pytest.fixture
def tree_builder(session):
    """Create `Projects/Site A/Drawings` owned by the given user."""

    async def build(owner_id):
        folders = FolderService.from_session(session)
        projects = await folders.create_folder("Projects", None, owner_id)
        site = await folders.create_folder("Site A", projects.id, owner_id)
        drawings = await folders.create_folder("Drawings", site.id, owner_id)
        return projects, site, drawings

    return build


class TestFolderTree:

    @pytest.mark.asyncio
    async def test_paths_are_materialised(self, session, seeded_users, tree_builder):
        projects, site, drawings = await tree_builder(seeded_users["alice"].id)

        assert projects.path == "Projects"
        assert drawings.path == "Projects/Site A/Drawings"

    @pytest.mark.asyncio
    async def test_creator_gets_owner_grant(self, session, seeded_users):
        folders = FolderService.from_session(session)
        folder = await folders.create_folder("Contracts", None, seeded_users["alice"].id)

        grant = await folders.get_permission(folder.id, seeded_users["alice"].id)

        assert grant.is_owner and grant.can_view and grant.can_share

    @pytest.mark.asyncio
    async def test_blank_name_and_unknown_parent(self, session):
        folders = FolderService.from_session(session)

        with pytest.raises(ValidationError):
            await folders.create_folder("   ", None, None)
        with pytest.raises(NotFoundError):
            await folders.create_folder("Orphan", 999, None)

    @pytest.mark.asyncio
    async def test_listing_children_and_roots(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, site, _ = await tree_builder(seeded_users["alice"].id)
        await folders.create_folder("Archive", None, None)

        assert [f.name for f in await folders.list_folders()] == ["Archive", "Projects"]
        assert [f.id for f in await folders.list_folders(projects.id)] == [site.id]

    @pytest.mark.asyncio
    async def test_breadcrumb_runs_from_root(self, session, seeded_users, tree_builder):
        _, _, drawings = await tree_builder(seeded_users["alice"].id)

        crumbs = await FolderService.from_session(session).get_breadcrumb(drawings.id)

        assert [f.name for f in crumbs] == ["Projects", "Site A", "Drawings"]

    @pytest.mark.asyncio
    async def test_rename_rewrites_subtree(self, session, seeded_users, tree_builder):
        projects, site, drawings = await tree_builder(seeded_users["alice"].id)

        await FolderService.from_session(session).update_folder(projects.id, name="Jobs")

        assert site.path == "Jobs/Site A"
        assert drawings.path == "Jobs/Site A/Drawings"

    @pytest.mark.asyncio
    async def test_move_to_root(self, session, seeded_users, tree_builder):
        _, site, drawings = await tree_builder(seeded_users["alice"].id)

        moved = await FolderService.from_session(session).update_folder(site.id, parent_id=None)

        assert moved.parent_id is None
        assert drawings.path == "Site A/Drawings"

    @pytest.mark.asyncio
    async def test_cannot_move_into_own_subtree(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, _, drawings = await tree_builder(seeded_users["alice"].id)

        with pytest.raises(ValidationError):
            await folders.update_folder(projects.id, parent_id=drawings.id)
        with pytest.raises(ValidationError):
            await folders.update_folder(projects.id, parent_id=projects.id)

    @pytest.mark.asyncio
    async def test_delete_removes_subtree_documents_and_files(
        self, session, seeded_users, tree_builder, upload_dir
    ):
        projects, _, drawings = await tree_builder(seeded_users["alice"].id)
        storage.write_bytes(b"%PDF-1.4", "documents/plan.pdf")
        await DocumentService.from_session(session).create_document(
            "plan.pdf", "documents/plan.pdf", seeded_users["alice"].id, size=8, folder_id=drawings.id
        )

        counts = await FolderService.from_session(session).delete_folder(projects.id)

        assert counts == {"folders": 3, "documents": 1}
        assert not (upload_dir / "documents" / "plan.pdf").exists()
        assert await session.scalar(select(func.count(Folder.id))) == 0
        assert await session.scalar(select(func.count(Document.id))) == 0


class TestFolderPermissions:

    @pytest.mark.asyncio
    async def test_access_from_ancestor_grant(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, _, drawings = await tree_builder(seeded_users["alice"].id)
        bob = seeded_users["bob"]

        assert (await folders.check_access(drawings.id, bob))[0] is False

        await folders.grant_permission(projects.id, bob.id, can_view=True)
        has_access, direct = await folders.check_access(drawings.id, bob)

        assert has_access is True
        assert direct is None

    @pytest.mark.asyncio
    async def test_admin_sees_everything(self, session, seeded_users, tree_builder):
        _, _, drawings = await tree_builder(seeded_users["alice"].id)

        has_access, _ = await FolderService.from_session(session).check_access(
            drawings.id, seeded_users["admin"]
        )

        assert has_access is True

    @pytest.mark.asyncio
    async def test_share_flag_allows_sharing_only(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, _, _ = await tree_builder(seeded_users["alice"].id)
        bob = seeded_users["bob"]
        await folders.grant_permission(projects.id, bob.id, can_view=True, can_share=True)

        assert await folders.can_manage_permissions(projects.id, bob, sharing=True) is True
        assert await folders.can_manage_permissions(projects.id, bob) is False
        with pytest.raises(PermissionDeniedError):
            await folders.require_manage(projects.id, bob)

    @pytest.mark.asyncio
    async def test_update_and_revoke(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, _, _ = await tree_builder(seeded_users["alice"].id)
        bob_id = seeded_users["bob"].id
        await folders.grant_permission(projects.id, bob_id)

        updated = await folders.update_permission(projects.id, bob_id, {"can_edit": True, "bogus": True})
        entries = await folders.list_permissions(projects.id)

        assert updated.can_edit is True
        assert {e["user"]["username"] for e in entries} == {"alice", "bob"}

        assert await folders.revoke_permission(projects.id, bob_id) is True
        with pytest.raises(NotFoundError):
            await folders.revoke_permission(projects.id, bob_id)

    @pytest.mark.asyncio
    async def test_duplicate_grant_conflicts(self, session, seeded_users, tree_builder):
        folders = FolderService.from_session(session)
        projects, _, _ = await tree_builder(seeded_users["alice"].id)
        folder_id = projects.id

        with pytest.raises(ConflictError) as exc_info:
            await folders.grant_permission(folder_id, seeded_users["alice"].id)

        assert exc_info.value.status_code == 409
