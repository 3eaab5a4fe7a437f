"""
Integration Tests - Projects API
================================
Projects, their managers, members, documents and equipment assignments.
"""

import pytest

from conftest import create_user

pytestmark = pytest.mark.integration


def _project(client, headers, name, **fields):
    response = client.post("/api/projects", json={"name": name, **fields}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _equipment(client, headers, code):
    response = client.post("/api/equipment", json={"name": f"Unit {code}", "code": code}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def managed_project(client, admin_headers):
    """A project with a manager account, as {"project", "manager"}."""
    manager = create_user(client, admin_headers, "manager")
    project = _project(client, admin_headers, "Bridge", location="River crossing", budget=125000)
    response = client.post(
        f"/api/projects/{project['id']}/managers", json={"user_id": manager["id"]}, headers=admin_headers
    )
    assert response.status_code == 201
    return {"project": project, "manager": manager}


class TestProjectsApi:
    def test_create_defaults(self, client, admin_headers):
        project = _project(client, admin_headers, "Tunnel", client_name="City Council")

        assert project["status"] == "in_progress"
        assert project["client_name"] == "City Council"
        assert project["created_by"] is not None

    def test_budget_accepts_formatted_text(self, client, admin_headers):
        project = _project(client, admin_headers, "Dam", budget="1,250,000.50")

        assert float(project["budget"]) == 1250000.50

    def test_regular_user_cannot_create(self, client, regular_user):
        response = client.post("/api/projects", json={"name": "Mine"}, headers=regular_user["headers"])

        assert response.status_code == 403

    def test_visibility_follows_membership(self, client, admin_headers, managed_project, regular_user):
        _project(client, admin_headers, "Unrelated")
        project_id = managed_project["project"]["id"]
        manager_headers = managed_project["manager"]["headers"]

        assert [p["name"] for p in client.get("/api/projects", headers=manager_headers).json()] == ["Bridge"]
        assert client.get("/api/projects", headers=regular_user["headers"]).json() == []
        assert len(client.get("/api/projects", headers=admin_headers).json()) == 2

        assert client.get(f"/api/projects/{project_id}", headers=regular_user["headers"]).status_code == 403
        assert client.get(f"/api/projects/{project_id}", headers=manager_headers).status_code == 200

    def test_update_and_delete(self, client, admin_headers):
        project = _project(client, admin_headers, "Depot")

        updated = client.put(f"/api/projects/{project['id']}", json={"status": "on_hold"}, headers=admin_headers)
        assert updated.status_code == 200
        assert updated.json()["status"] == "on_hold"

        assert client.delete(f"/api/projects/{project['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/projects/{project['id']}", headers=admin_headers).status_code == 404

    def test_unknown_status_is_rejected(self, client, admin_headers):
        response = client.post("/api/projects", json={"name": "X", "status": "paused"}, headers=admin_headers)

        assert response.status_code == 422

    def test_project_image_upload(self, client, admin_headers):
        response = client.post(
            "/api/projects/upload-image",
            files={"image": ("site.jpg", b"\xff\xd8jpeg", "image/jpeg")},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["url"].startswith("/uploads/projects/project-")


class TestProjectTeamApi:
    def test_manager_adds_members(self, client, admin_headers, managed_project, regular_user):
        project_id = managed_project["project"]["id"]
        manager_headers = managed_project["manager"]["headers"]

        added = client.post(
            f"/api/projects/{project_id}/members", json={"user_id": regular_user["id"]}, headers=manager_headers
        )
        assert added.status_code == 201
        assert added.json()["permissions"] == ["view"]
        assert added.json()["added_by"] == managed_project["manager"]["id"]

        member_id = added.json()["id"]
        changed = client.put(
            f"/api/projects/{project_id}/members/{member_id}",
            json={"role": "observer", "permissions": ["view", "comment"]},
            headers=manager_headers,
        )
        assert changed.json()["role"] == "observer"
        assert changed.json()["permissions"] == ["view", "comment"]

        members = client.get(f"/api/projects/{project_id}/members", headers=regular_user["headers"]).json()
        assert [m["user"]["username"] for m in members] == ["regular"]
        assert [p["name"] for p in client.get("/api/projects", headers=regular_user["headers"]).json()] == ["Bridge"]

        removed = client.delete(f"/api/projects/{project_id}/members/{member_id}", headers=manager_headers)
        assert removed.status_code == 204

    def test_members_cannot_manage(self, client, admin_headers, managed_project, regular_user):
        project_id = managed_project["project"]["id"]
        other = create_user(client, admin_headers, "other")
        client.post(f"/api/projects/{project_id}/members", json={"user_id": regular_user["id"]}, headers=admin_headers)

        response = client.post(
            f"/api/projects/{project_id}/members", json={"user_id": other["id"]}, headers=regular_user["headers"]
        )

        assert response.status_code == 403

    def test_managers_listing_and_removal(self, client, admin_headers, managed_project):
        project_id = managed_project["project"]["id"]

        managers = client.get(f"/api/projects/{project_id}/managers", headers=admin_headers).json()
        assert [m["user"]["username"] for m in managers] == ["manager"]

        duplicate = client.post(
            f"/api/projects/{project_id}/managers",
            json={"user_id": managed_project["manager"]["id"]},
            headers=admin_headers,
        )
        assert duplicate.status_code == 409

        removed = client.delete(f"/api/projects/{project_id}/managers/{managers[0]['id']}", headers=admin_headers)
        assert removed.status_code == 204
        assert client.get("/api/projects", headers=managed_project["manager"]["headers"]).json() == []

    def test_document_links(self, client, admin_headers, managed_project):
        project_id = managed_project["project"]["id"]
        manager_headers = managed_project["manager"]["headers"]
        document = client.post(
            "/api/documents/upload",
            files={"file": ("contract.pdf", b"%PDF", "application/pdf")},
            headers=admin_headers,
        ).json()

        linked = client.post(
            f"/api/projects/{project_id}/documents",
            json={"document_id": document["id"], "document_type": "contract", "description": "Signed"},
            headers=manager_headers,
        )
        assert linked.status_code == 201

        listed = client.get(f"/api/projects/{project_id}/documents", headers=manager_headers).json()
        assert listed[0]["document"]["name"] == "contract.pdf"
        assert listed[0]["document_type"] == "contract"

        removed = client.delete(
            f"/api/projects/{project_id}/documents/{linked.json()['id']}", headers=manager_headers
        )
        assert removed.status_code == 204
        assert client.get(f"/api/projects/{project_id}/documents", headers=manager_headers).json() == []


class TestEquipmentAssignmentsApi:
    def test_assign_share_and_return(self, client, admin_headers, managed_project):
        bridge = managed_project["project"]
        tunnel = _project(client, admin_headers, "Tunnel")
        crane = _equipment(client, admin_headers, "CRN-1")
        manager_headers = managed_project["manager"]["headers"]

        first = client.post(
            "/api/project-equipment", json={"project_id": bridge["id"], "equipment_id": crane["id"]}, headers=manager_headers
        )
        assert first.status_code == 201
        assert first.json()["status"] == "assigned"

        blocked = client.post(
            "/api/project-equipment", json={"project_id": tunnel["id"], "equipment_id": crane["id"]}, headers=admin_headers
        )
        assert blocked.status_code == 400

        shared = client.post(
            "/api/project-equipment",
            json={"project_id": tunnel["id"], "equipment_id": crane["id"], "is_shared": True, "authorization_code": "AUTH-9"},
            headers=admin_headers,
        )
        assert shared.status_code == 201

        current = client.get(f"/api/project-equipment/equipment/{crane['id']}/current", headers=admin_headers).json()
        assert {a["project_name"] for a in current} == {"Bridge", "Tunnel"}

        returned = client.post(
            f"/api/project-equipment/{first.json()['id']}/return", json={"notes": "Back in yard"}, headers=manager_headers
        )
        assert returned.status_code == 200
        assert returned.json()["status"] == "returned"
        assert returned.json()["notes"] == "Back in yard"

        again = client.post(f"/api/project-equipment/{first.json()['id']}/return", headers=manager_headers)
        assert again.status_code == 400

        history = client.get(f"/api/project-equipment/equipment/{crane['id']}/history", headers=admin_headers).json()
        assert len(history) == 2
        assert history[-1]["assigned_by_user"]["username"] == "manager"

    def test_shared_assignment_needs_code(self, client, admin_headers, managed_project):
        crane = _equipment(client, admin_headers, "CRN-2")

        response = client.post(
            "/api/project-equipment",
            json={"project_id": managed_project["project"]["id"], "equipment_id": crane["id"], "is_shared": True},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["context"]["field"] == "authorization_code"

    def test_only_managers_assign(self, client, admin_headers, managed_project, regular_user):
        crane = _equipment(client, admin_headers, "CRN-3")

        response = client.post(
            "/api/project-equipment",
            json={"project_id": managed_project["project"]["id"], "equipment_id": crane["id"]},
            headers=regular_user["headers"],
        )

        assert response.status_code == 403

    def test_project_listing_and_update(self, client, admin_headers, managed_project):
        project_id = managed_project["project"]["id"]
        crane = _equipment(client, admin_headers, "CRN-4")
        assignment = client.post(
            "/api/project-equipment", json={"project_id": project_id, "equipment_id": crane["id"]}, headers=admin_headers
        ).json()

        updated = client.put(
            f"/api/project-equipment/{assignment['id']}",
            json={"status": "in_use", "notes": "On site"},
            headers=managed_project["manager"]["headers"],
        )
        assert updated.status_code == 200
        assert updated.json()["status"] == "in_use"

        listed = client.get(f"/api/project-equipment/project/{project_id}", headers=admin_headers).json()
        assert listed[0]["equipment"]["code"] == "CRN-4"
        assert listed[0]["project_name"] == "Bridge"

        detail = client.get(f"/api/project-equipment/{assignment['id']}", headers=admin_headers).json()
        assert detail["notes"] == "On site"

    def test_history_is_for_staff(self, client, admin_headers, regular_user):
        crane = _equipment(client, admin_headers, "CRN-5")

        response = client.get(f"/api/project-equipment/equipment/{crane['id']}/history", headers=regular_user["headers"])

        assert response.status_code == 403

    def test_delete_assignment(self, client, admin_headers, managed_project):
        crane = _equipment(client, admin_headers, "CRN-6")
        assignment = client.post(
            "/api/project-equipment",
            json={"project_id": managed_project["project"]["id"], "equipment_id": crane["id"]},
            headers=admin_headers,
        ).json()

        assert client.delete(f"/api/project-equipment/{assignment['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/project-equipment/{assignment['id']}", headers=admin_headers).status_code == 404
