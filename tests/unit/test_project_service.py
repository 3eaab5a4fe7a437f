"""
Unit Tests - Projects and Equipment Assignments
===============================================
"""

import pytest
from sqlalchemy import func, select

from exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from models import ProjectEquipment, ProjectMember
from services.document_service import DocumentService
from services.equipment_service import EquipmentService
from services.project_equipment_service import ProjectEquipmentService
from services.project_service import ProjectService

pytestmark = pytest.mark.unit


@pytest.fixture
def make_project(session, seeded_users):
    async def make(name="Harbour Bridge", **extra):
        data = {"name": name, **extra}
        return await ProjectService.from_session(session).create_project(data, seeded_users["admin"].id)

    return make


class TestProjects:

    @pytest.mark.asyncio
    async def test_defaults(self, session, make_project):
        project = await make_project()
        assert project.status == "in_progress"

    @pytest.mark.asyncio
    async def test_invalid_status(self, session, make_project):
        with pytest.raises(ValidationError):
            await make_project(status="paused")

    @pytest.mark.asyncio
    async def test_visibility(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        bridge = await make_project("Bridge")
        tunnel = await make_project("Tunnel")
        await make_project("Depot")
        await service.add_member(bridge.id, seeded_users["alice"].id, added_by=None)
        await service.add_manager(tunnel.id, seeded_users["alice"].id)

        visible = {p.name for p in await service.list_projects_for(seeded_users["alice"])}

        assert visible == {"Bridge", "Tunnel"}
        assert len(await service.list_projects_for(seeded_users["admin"])) == 3
        assert await service.list_projects_for(seeded_users["bob"]) == []

    @pytest.mark.asyncio
    async def test_access_gates(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        project = await make_project()
        await service.add_member(project.id, seeded_users["alice"].id, added_by=None)
        await service.add_manager(project.id, seeded_users["bob"].id, role="lead")

        assert await service.require_access(project.id, seeded_users["alice"]) is project
        await service.require_manager(project.id, seeded_users["bob"])
        await service.require_manager(project.id, seeded_users["admin"])

        with pytest.raises(PermissionDeniedError):
            await service.require_manager(project.id, seeded_users["alice"])
        with pytest.raises(PermissionDeniedError):
            await service.require_access(project.id, seeded_users["technician"])
        with pytest.raises(NotFoundError):
            await service.require_access(999, seeded_users["admin"])

    @pytest.mark.asyncio
    async def test_member_defaults_and_update(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        project = await make_project()

        member = await service.add_member(project.id, seeded_users["alice"].id, added_by=seeded_users["admin"].id)
        assert member.role == "member"
        assert member.permissions == ["view"]

        updated = await service.update_member(project.id, member.id, role="observer", permissions=["view", "comment"])
        assert updated.permissions == ["view", "comment"]

        entries = await service.list_members(project.id)
        assert entries[0]["user"]["username"] == "alice"
        assert entries[0]["role"] == "observer"

    @pytest.mark.asyncio
    async def test_remove_member_checks_project(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        first = await make_project("First")
        second = await make_project("Second")
        member = await service.add_member(first.id, seeded_users["alice"].id, added_by=None)

        with pytest.raises(NotFoundError):
            await service.remove_member(second.id, member.id)
        assert await service.remove_member(first.id, member.id) is True

    @pytest.mark.asyncio
    async def test_documents(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        project = await make_project()
        document = await DocumentService.from_session(session).create_document(
            "permit.pdf", "documents/permit.pdf", None
        )

        with pytest.raises(ValidationError):
            await service.add_document(project.id, document.id, None, document_type="memo")

        await service.add_document(project.id, document.id, None, document_type="permit")
        entries = await service.list_documents(project.id)

        assert entries[0]["document_type"] == "permit"
        assert entries[0]["document"]["name"] == "permit.pdf"

    @pytest.mark.asyncio
    async def test_delete_cascades(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        project = await make_project()
        await service.add_member(project.id, seeded_users["alice"].id, added_by=None)

        await service.delete_project(project.id)

        assert await session.scalar(select(func.count(ProjectMember.id))) == 0

    @pytest.mark.asyncio
    async def test_duplicate_manager(self, session, seeded_users, make_project):
        service = ProjectService.from_session(session)
        project = await make_project()
        project_id, user_id = project.id, seeded_users["alice"].id
        await service.add_manager(project_id, user_id)

        with pytest.raises(ConflictError) as exc_info:
            await service.add_manager(project_id, user_id)

        assert exc_info.value.status_code == 409


class TestEquipmentAssignments:

    @pytest.fixture
    def setup(self, session, seeded_users, make_project):
        async def build():
            first = await make_project("North site")
            second = await make_project("South site")
            crane = await EquipmentService.from_session(session).create_equipment(
                {"name": "Crane", "code": "CR-1"}
            )
            return first, second, crane

        return build

    @pytest.mark.asyncio
    async def test_second_assignment_must_be_shared(self, session, seeded_users, setup):
        service = ProjectEquipmentService.from_session(session)
        first, second, crane = await setup()
        await service.assign({"project_id": first.id, "equipment_id": crane.id}, seeded_users["admin"].id)

        with pytest.raises(ValidationError, match="already assigned"):
            await service.assign({"project_id": second.id, "equipment_id": crane.id}, None)

        with pytest.raises(ValidationError, match="authorization code"):
            await service.assign(
                {"project_id": second.id, "equipment_id": crane.id, "is_shared": True, "authorization_code": " "},
                None,
            )

        shared = await service.assign(
            {"project_id": second.id, "equipment_id": crane.id, "is_shared": True, "authorization_code": "OK-42"},
            None,
        )
        assert shared.authorization_code == "OK-42"
        assert len(await service.current_assignments(crane.id)) == 2

    @pytest.mark.asyncio
    async def test_new_assignment_status(self, session, setup):
        service = ProjectEquipmentService.from_session(session)
        first, _, crane = await setup()

        with pytest.raises(ValidationError):
            await service.assign(
                {"project_id": first.id, "equipment_id": crane.id, "status": "returned"}, None
            )

        assignment = await service.assign(
            {"project_id": first.id, "equipment_id": crane.id, "status": "in_use"}, None
        )
        assert assignment.status == "in_use"

    @pytest.mark.asyncio
    async def test_unknown_project_or_equipment(self, session, setup):
        service = ProjectEquipmentService.from_session(session)
        first, _, crane = await setup()

        with pytest.raises(NotFoundError):
            await service.assign({"project_id": 999, "equipment_id": crane.id}, None)
        with pytest.raises(NotFoundError):
            await service.assign({"project_id": first.id, "equipment_id": 999}, None)
        with pytest.raises(NotFoundError):
            await service.list_for_project(999)

    @pytest.mark.asyncio
    async def test_return_frees_equipment(self, session, seeded_users, setup):
        service = ProjectEquipmentService.from_session(session)
        first, second, crane = await setup()
        assignment = await service.assign({"project_id": first.id, "equipment_id": crane.id}, None)

        returned = await service.return_equipment(assignment.id, notes="Back in yard")

        assert returned.status == "returned"
        assert returned.actual_return_date is not None
        assert returned.notes == "Back in yard"
        assert await service.current_assignments(crane.id) == []

        with pytest.raises(ValidationError):
            await service.return_equipment(assignment.id)

        await service.assign({"project_id": second.id, "equipment_id": crane.id}, seeded_users["admin"].id)
        history = await service.assignment_history(crane.id)
        assert [h["project_name"] for h in history] == ["South site", "North site"]
        assert history[0]["assigned_by_user"]["username"] == "root"
        assert history[1]["assigned_by_user"] is None

    @pytest.mark.asyncio
    async def test_project_listing_is_enriched(self, session, seeded_users, setup):
        service = ProjectEquipmentService.from_session(session)
        first, _, crane = await setup()
        await service.assign({"project_id": first.id, "equipment_id": crane.id}, seeded_users["admin"].id)

        entries = await service.list_for_project(first.id)

        assert entries[0]["equipment"]["code"] == "CR-1"
        assert entries[0]["project_name"] == "North site"

    @pytest.mark.asyncio
    async def test_update_whitelists_fields(self, session, setup):
        service = ProjectEquipmentService.from_session(session)
        first, second, crane = await setup()
        assignment = await service.assign({"project_id": first.id, "equipment_id": crane.id}, None)

        with pytest.raises(ValidationError):
            await service.update_assignment(assignment.id, {"status": "lost"})

        updated = await service.update_assignment(
            assignment.id, {"notes": "On deck 3", "project_id": second.id}
        )
        assert updated.notes == "On deck 3"
        assert updated.project_id == first.id

    @pytest.mark.asyncio
    async def test_deleting_project_removes_assignments(self, session, setup):
        service = ProjectEquipmentService.from_session(session)
        first, _, crane = await setup()
        await service.assign({"project_id": first.id, "equipment_id": crane.id}, None)

        await ProjectService.from_session(session).delete_project(first.id)

        assert await session.scalar(select(func.count(ProjectEquipment.id))) == 0
