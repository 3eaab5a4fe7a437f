"""
Integration Tests - Folders and Documents API
=============================================
Folder trees, sharing, uploads, downloads, versions and activity.
"""

import pytest

pytestmark = pytest.mark.integration


def _folder(client, headers, name, parent_id=None):
    response = client.post("/api/folders", json={"name": name, "parent_id": parent_id}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _upload(client, headers, filename, content, folder_id=None, content_type="application/octet-stream"):
    data = {"folder_id": str(folder_id)} if folder_id is not None else {}
    response = client.post(
        "/api/documents/upload",
        files={"file": (filename, content, content_type)},
        data=data,
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestFoldersApi:
    def test_tree_paths_and_breadcrumb(self, client, admin_headers):
        projects = _folder(client, admin_headers, "Projects")
        site = _folder(client, admin_headers, "Site A", projects["id"])
        drawings = _folder(client, admin_headers, "Drawings", site["id"])

        assert drawings["path"] == "Projects/Site A/Drawings"

        roots = client.get("/api/folders", headers=admin_headers).json()
        assert [f["name"] for f in roots] == ["Projects"]
        children = client.get(f"/api/folders?parent_id={projects['id']}", headers=admin_headers).json()
        assert [f["name"] for f in children] == ["Site A"]

        crumbs = client.get(f"/api/folders/{drawings['id']}/path", headers=admin_headers).json()
        assert [f["name"] for f in crumbs] == ["Projects", "Site A", "Drawings"]

    def test_rename_rewrites_descendant_paths(self, client, admin_headers):
        projects = _folder(client, admin_headers, "Projects")
        site = _folder(client, admin_headers, "Site A", projects["id"])

        response = client.put(f"/api/folders/{projects['id']}", json={"name": "Jobs"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["path"] == "Jobs"
        assert client.get(f"/api/folders/{site['id']}", headers=admin_headers).json()["path"] == "Jobs/Site A"

    def test_move_under_own_descendant_is_rejected(self, client, admin_headers):
        parent = _folder(client, admin_headers, "Parent")
        child = _folder(client, admin_headers, "Child", parent["id"])

        response = client.put(f"/api/folders/{parent['id']}", json={"parent_id": child["id"]}, headers=admin_headers)

        assert response.status_code == 400

    def test_delete_reports_what_was_removed(self, client, admin_headers):
        root = _folder(client, admin_headers, "Old")
        _folder(client, admin_headers, "Older", root["id"])
        _upload(client, admin_headers, "notes.txt", b"obsolete", folder_id=root["id"])

        response = client.delete(f"/api/folders/{root['id']}", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["folders"] == 2
        assert body["documents"] == 1
        assert client.get(f"/api/folders/{root['id']}", headers=admin_headers).status_code == 404

    def test_regular_user_cannot_delete_folders(self, client, admin_headers, regular_user):
        folder = _folder(client, admin_headers, "Keep")

        response = client.delete(f"/api/folders/{folder['id']}", headers=regular_user["headers"])

        assert response.status_code == 403

    def test_sharing_a_folder(self, client, admin_headers, regular_user):
        owned = _folder(client, regular_user["headers"], "Mine")
        shared_with = client.get("/api/users", headers=admin_headers).json()
        admin_id = next(u["id"] for u in shared_with if u["username"] == "admin")

        access = client.get(f"/api/folders/{owned['id']}/check-access", headers=regular_user["headers"]).json()
        assert access["has_access"] is True
        assert access["permissions"]["is_owner"] is True

        grant = client.post(
            f"/api/folders/{owned['id']}/permissions",
            json={"user_id": admin_id, "can_edit": True},
            headers=regular_user["headers"],
        )
        assert grant.status_code == 201
        assert grant.json()["can_edit"] is True

        listed = client.get(f"/api/folders/{owned['id']}/permissions", headers=regular_user["headers"]).json()
        assert {p["user_id"] for p in listed} == {regular_user["id"], admin_id}

        revoke = client.delete(
            f"/api/folders/{owned['id']}/permissions/{admin_id}", headers=regular_user["headers"]
        )
        assert revoke.status_code == 204

    def test_strangers_cannot_share(self, client, admin_headers, regular_user):
        folder = _folder(client, admin_headers, "Private")

        response = client.post(
            f"/api/folders/{folder['id']}/permissions",
            json={"user_id": regular_user["id"]},
            headers=regular_user["headers"],
        )

        assert response.status_code == 403
        access = client.get(f"/api/folders/{folder['id']}/check-access", headers=regular_user["headers"]).json()
        assert access == {"has_access": False, "permissions": None}


class TestDocumentsApi:
    def test_upload_detects_type_and_logs_activity(self, client, admin_headers):
        folder = _folder(client, admin_headers, "Drawings")

        body = _upload(client, admin_headers, "site.dwg", b"AC1027", folder_id=folder["id"])

        assert body["type"] == "autocad"
        assert body["original_extension"] == ".dwg"
        assert body["folder_id"] == folder["id"]
        assert body["current_version"] == 1
        assert body["size"] == 6
        assert body["file_info"]["original_name"] == "site.dwg"
        assert body["path"].startswith("documents/")

        activity = client.get(f"/api/documents/{body['id']}/activity", headers=admin_headers).json()
        assert [a["action"] for a in activity] == ["upload"]
        assert activity[0]["user"]["username"] == "admin"

    def test_upload_without_file(self, client, admin_headers):
        response = client.post("/api/documents/upload", data={"description": "x"}, headers=admin_headers)

        assert response.status_code == 400

    def test_download_streams_file_with_its_name(self, client, admin_headers):
        document = _upload(client, admin_headers, "site.dwg", b"drawing-bytes")

        response = client.get(f"/api/documents/{document['id']}/download", headers=admin_headers)

        assert response.status_code == 200
        assert response.content == b"drawing-bytes"
        assert "site.dwg" in response.headers["content-disposition"]

        actions = [a["action"] for a in client.get("/api/activity?limit=5", headers=admin_headers).json()]
        assert actions[0] == "download"

    def test_new_version_becomes_current(self, client, admin_headers):
        document = _upload(client, admin_headers, "report.pdf", b"first draft", content_type="application/pdf")

        response = client.post(
            f"/api/documents/{document['id']}/versions",
            files={"file": ("report.pdf", b"second draft", "application/pdf")},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["version"] == 2
        versions = client.get(f"/api/documents/{document['id']}/versions", headers=admin_headers).json()
        assert [v["version"] for v in versions] == [2, 1]

        current = client.get(f"/api/documents/{document['id']}", headers=admin_headers).json()
        assert current["current_version"] == 2
        download = client.get(f"/api/documents/{document['id']}/download", headers=admin_headers)
        assert download.content == b"second draft"

    def test_prepared_upload_flow(self, client, admin_headers):
        reserved = client.post(
            "/api/documents/prepare-upload", json={"file_extension": ".txt"}, headers=admin_headers
        )
        assert reserved.status_code == 200
        filename = reserved.json()["filename"]

        stored = client.put(f"/api/upload-file?filename={filename}", content=b"raw body", headers=admin_headers)
        assert stored.status_code == 200
        assert stored.json()["size"] == 8

        created = client.post(
            "/api/documents",
            json={"name": "Raw notes", "type": "text", "path": stored.json()["path"], "size": 8},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert client.get(f"/api/documents/{created.json()['id']}/download", headers=admin_headers).content == b"raw body"

    def test_raw_upload_rejects_path_names(self, client, admin_headers):
        response = client.put("/api/upload-file?filename=../escape.txt", content=b"x", headers=admin_headers)

        assert response.status_code == 400

    def test_search_and_listing(self, client, admin_headers):
        _upload(client, admin_headers, "Bridge survey.pdf", b"a")
        _upload(client, admin_headers, "Tunnel log.txt", b"b")

        found = client.get("/api/documents/search?q=BRIDGE", headers=admin_headers).json()
        assert [d["name"] for d in found] == ["Bridge survey.pdf"]

        unfiled = client.get("/api/documents", headers=admin_headers).json()
        assert len(unfiled) == 2

        assert client.get("/api/documents/search?q=%20", headers=admin_headers).status_code == 400

    def test_update_and_patch(self, client, admin_headers):
        document = _upload(client, admin_headers, "memo.txt", b"m")

        put = client.put(
            f"/api/documents/{document['id']}", json={"description": "Weekly memo"}, headers=admin_headers
        )
        assert put.status_code == 200
        assert put.json()["description"] == "Weekly memo"

        patch = client.patch(f"/api/documents/{document['id']}", json={"name": "memo-v2.txt"}, headers=admin_headers)
        assert patch.json()["name"] == "memo-v2.txt"

        actions = [a["action"] for a in client.get(f"/api/documents/{document['id']}/activity", headers=admin_headers).json()]
        assert actions.count("edit") == 1

    def test_activity_action_is_validated(self, client, admin_headers):
        document = _upload(client, admin_headers, "memo.txt", b"m")
        url = f"/api/documents/{document['id']}/activity"

        assert client.post(url, json={"action": "view"}, headers=admin_headers).status_code == 201
        assert client.post(url, json={"action": "teleport"}, headers=admin_headers).status_code == 400

    def test_delete_document(self, client, admin_headers, regular_user):
        document = _upload(client, admin_headers, "gone.txt", b"bye")

        assert client.delete(f"/api/documents/{document['id']}", headers=regular_user["headers"]).status_code == 403
        assert client.delete(f"/api/documents/{document['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/documents/{document['id']}", headers=admin_headers).status_code == 404

    def test_unknown_document(self, client, admin_headers):
        response = client.get("/api/documents/9999", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"]["error_type"] == "NotFoundError"
