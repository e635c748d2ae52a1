from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from auth import dependencies as auth_dependencies
from categories import router as categories_router
from conftest import MemoryEntityStore, mock_connection
from core import errors
from main import app
from prompts import router as prompts_router
from prompts.repository import PromptRepository
from transfer import router as transfer_router

SERVER_TIME = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


class Session:
    """Per-test wiring: which user is signed in and which store backs the routes."""

    def __init__(self):
        self.user = {"id": "u-1", "email": "ed@example.com", "name": "Ed", "role": "editor"}
        self.store = MemoryEntityStore()
        self.prompts = AsyncMock()
        self.categories = AsyncMock()

    def as_role(self, role):
        self.user = dict(self.user, role=role)


@pytest.fixture
def session():
    wiring = Session()
    app.dependency_overrides[auth_dependencies.get_current_user] = lambda: wiring.user
    app.dependency_overrides[auth_dependencies.get_optional_user] = lambda: None
    app.dependency_overrides[transfer_router.get_entity_store] = lambda: wiring.store
    app.dependency_overrides[prompts_router.get_prompt_repository] = lambda: wiring.prompts
    app.dependency_overrides[categories_router.get_category_repository] = lambda: wiring.categories
    yield wiring
    app.dependency_overrides.clear()


@pytest.fixture
def client(session):
    return TestClient(app, raise_server_exceptions=False)


def test_health_and_version(client):
    assert client.get("/api/health").json()["success"] is True
    version = client.get("/api/version").json()["data"]
    assert version["apiVersion"] == "v1"
    assert version["compatibility"]["minMobileVersion"] == "1.0.0"


class TestImportExport:
    def test_import(self, client, session):
        response = client.post(
            "/api/import",
            json={"data": {"categories": [{"name": "Writing"}], "prompts": [{"title": "T", "body": "{{x}}"}]}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Import completed successfully"
        assert body["data"]["categories"]["new"] == 1
        assert body["data"]["prompts"]["new"] == 1
        assert len(session.store.state.prompts) == 1

    def test_dry_run(self, client, session):
        response = client.post("/api/import", json={"data": {"categories": [{"name": "Writing"}]}, "dryRun": True})

        assert response.json()["message"] == "Import preview completed"
        assert response.json()["data"]["categories"]["new"] == 1
        assert session.store.state.categories == {}

    def test_viewer_cannot_import(self, client, session):
        session.as_role("viewer")
        response = client.post("/api/import", json={"data": {}})
        assert response.status_code == 403

    def test_bad_shape_is_400(self, client):
        response = client.post("/api/import", json={"data": {"categories": "Writing"}})
        assert response.status_code == 400

    def test_infrastructure_failure_is_500_and_rolled_back(self, client, session):
        session.store.state.fail_on_prompt_create = 1
        response = client.post(
            "/api/import",
            json={"data": {"categories": [{"name": "Writing"}], "prompts": [{"title": "T", "body": "B"}]}},
        )

        assert response.status_code == 500
        assert session.store.state.categories == {}

    def test_public_export(self, client, session):
        session.store.add_category("Writing")
        response = client.get("/api/export", params={"prompts": "false"})

        data = response.json()["data"]
        assert data["version"] == "1.0"
        assert [c["name"] for c in data["categories"]] == ["Writing"]
        assert data["prompts"] == []

    def test_download_sets_attachment(self, client, session):
        session.as_role("viewer")
        response = client.post("/api/export/download", json={"filename": "backup.json"})

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="backup.json"'
        assert response.json()["version"] == "1.0"

    def test_download_default_filename(self, client):
        response = client.post("/api/export/download")
        assert 'filename="promptbuddy-export-' in response.headers["content-disposition"]

    def test_validate_import(self, client):
        response = client.post(
            "/api/validate-import",
            json={"data": {"prompts": [{"title": "T", "body": "{{a}} {{b}}"}, {"body": "x"}]}},
        )

        body = response.json()
        assert body["message"] == "Data has validation errors"
        assert body["data"]["summary"] == {"categories": 0, "prompts": 2, "variables": 2}
        assert body["data"]["errors"] == ["Prompt 2: missing or invalid title"]


class TestPrompts:
    def test_update_conflict_is_409(self, client, session):
        session.prompts.update.side_effect = errors.ConflictError(current=SERVER_TIME)

        response = client.put(
            "/api/prompts/p-1",
            json={"title": "New", "updatedAt": "2024-05-01T00:00:00Z"},
        )

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["type"] == "conflict"
        assert detail["serverUpdatedAt"] == SERVER_TIME.isoformat()
        _, changes = session.prompts.update.await_args.args
        assert changes == {"title": "New"}

    def test_explicit_null_category_detaches(self, client, session):
        session.prompts.update.return_value = {"id": "p-1", "category_id": None}

        client.put("/api/prompts/p-1", json={"categoryId": None})

        _, changes = session.prompts.update.await_args.args
        assert changes == {"category_id": None}

    @pytest.mark.parametrize(
        "method, path, payload",
        [
            ("post", "/api/prompts", {"title": "T", "body": "B", "categoryId": "ghost"}),
            ("put", "/api/prompts/p-1", {"categoryId": "ghost"}),
        ],
    )
    def test_unknown_category_is_404(self, client, session, method, path, payload):
        conn = mock_connection()
        conn.fetchrow.side_effect = [{"updated_at": SERVER_TIME}, None] if method == "put" else [None]
        app.dependency_overrides[prompts_router.get_prompt_repository] = lambda: PromptRepository(conn)

        response = client.request(method, path, json=payload)

        assert response.status_code == 404
        assert response.json()["detail"] == "Category not found"
        conn.execute.assert_not_awaited()

    def test_unknown_bulk_operation_is_rejected(self, client, session):
        response = client.post("/api/prompts/bulk", json={"operation": "archive", "promptIds": ["a"]})

        assert response.status_code == 422
        session.prompts.bulk.assert_not_awaited()

    def test_bulk_move(self, client, session):
        session.prompts.bulk.return_value = 2

        response = client.post(
            "/api/prompts/bulk",
            json={"operation": "move_category", "promptIds": ["A", "B"], "data": {"categoryId": "X"}},
        )

        assert response.json()["affected"] == 2
        session.prompts.bulk.assert_awaited_once_with("move_category", ["A", "B"], {"categoryId": "X"})

    def test_delete_missing_is_404(self, client, session):
        session.prompts.delete.side_effect = errors.NotFoundError("Prompt", "nope")
        response = client.delete("/api/prompts/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Prompt not found"

    def test_viewer_cannot_delete(self, client, session):
        session.as_role("viewer")
        assert client.delete("/api/prompts/p-1").status_code == 403
        session.prompts.delete.assert_not_awaited()

    def test_parse_variables(self, client):
        response = client.post("/api/prompts/parse-variables", json={"body": "Hi {{name}} {{ name }}"})
        assert response.json()["data"] == {"variables": ["name"], "count": 1}

    def test_parse_variables_requires_body(self, client):
        assert client.post("/api/prompts/parse-variables", json={}).status_code == 400


class TestCategories:
    def test_delete_moves_prompts(self, client, session):
        response = client.delete("/api/categories/c-1", params={"moveToCategory": "c-2"})

        assert response.status_code == 200
        session.categories.delete.assert_awaited_once_with("c-1", move_to="c-2")

    def test_missing_category_is_404(self, client, session):
        session.categories.get_by_id.return_value = None
        assert client.get("/api/categories/c-9").status_code == 404

    def test_reorder_route_is_not_shadowed_by_id(self, client, session):
        session.categories.reorder.return_value = 2

        response = client.put(
            "/api/categories/reorder",
            json={"categoryOrders": [{"id": "a", "order_index": 1}, {"id": "b", "order_index": 0}]},
        )

        assert response.json()["affected"] == 2
        session.categories.reorder.assert_awaited_once_with([("a", 1), ("b", 0)])
