"""
Unit Tests - Request Metrics
============================
Route templates used as the endpoint label.
"""

import pytest

from metrics import route_template

pytestmark = pytest.mark.unit


class TestRouteTemplate:

    @pytest.mark.parametrize(
        "path, params, expected",
        [
            ("/api/documents/4242", {"document_id": "4242"}, "/api/documents/{document_id}"),
            ("/api/users", {}, "/api/users"),
            ("/api/users/5/role/5", {"user_id": "5", "role_id": "5"}, "/api/users/{user_id}/role/{role_id}"),
            ("/api/project-equipment/project/3", {"project_id": 3}, "/api/project-equipment/project/{project_id}"),
            ("/api/reactions/tasks/7", {"target": "tasks", "target_id": "7"}, "/api/reactions/{target}/{target_id}"),
        ],
    )
    def test_values_become_names(self, path, params, expected):
        assert route_template(path, params) == expected
