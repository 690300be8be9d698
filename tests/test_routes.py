import logging
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.authorization.models import Principal
from app.config.permissions_config import Permissions, Scopes
from app.config.settings import settings
from app.core.dependencies import get_session, require_permission
from app.database.supabase_client import get_supabase
from app.main import app
from app.modules.auth.service import StaticSession
from conftest import load_principal, perm_id


@pytest.fixture
def client_as(supabase):
    """client_as("member") -> TestClient acting as that user; None is anonymous."""
    app.dependency_overrides[get_supabase] = lambda: supabase

    def _client(user_id=None):
        principal = load_principal(supabase, user_id)
        app.dependency_overrides[get_session] = lambda: StaticSession(principal)
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_health(client_as):
    response = client_as().get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert response.headers["X-Frame-Options"] == "DENY"


def test_lifespan_logs_startup_and_shutdown(caplog):
    with caplog.at_level(logging.INFO, logger="app.main"):
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert "Application startup" in caplog.messages
        assert "Application shutdown" in caplog.messages


class TestRoleRoutes:
    def test_create_requires_login(self, client_as):
        response = client_as().post("/api/v1/roles", json={"name": "qa", "scope": Scopes.PROJECT})
        assert response.status_code == 401

    def test_create_and_list(self, client_as):
        client = client_as("member")
        response = client.post("/api/v1/roles", json={"name": "qa", "scope": Scopes.PROJECT})
        assert response.status_code == 201
        assert response.json()["owner_id"] == "member"

        response = client.get("/api/v1/roles", params={"scope": Scopes.PROJECT})
        assert [r["name"] for r in response.json()] == ["developer", "qa", "reviewer", "scratch"]

    def test_read(self, client_as):
        client = client_as("member")
        assert client.get("/api/v1/roles/r-reviewer").status_code == 200
        assert client.get("/api/v1/roles/r-foreign").status_code == 403
        assert client.get("/api/v1/roles/missing").status_code == 404

        response = client.get("/api/v1/roles/r-reviewer/with-permissions")
        assert [p["name"] for p in response.json()["permissions"]] == ["approve:page"]

    def test_system_role_is_read_only(self, client_as):
        response = client_as("admin").put("/api/v1/roles/r-ws-admin", json={"description": "Mine"})
        assert response.status_code == 403

    def test_delete(self, client_as):
        client = client_as("member")
        assert client.delete("/api/v1/roles/r-reviewer").status_code == 409
        assert client.delete("/api/v1/roles/r-scratch").status_code == 204
        assert client.get("/api/v1/roles/r-scratch").status_code == 404

    def test_sync_permissions(self, client_as):
        response = client_as("member").put(
            "/api/v1/roles/r-reviewer/permissions", json={"permission_ids": ["cp-flag"]}
        )
        assert response.status_code == 200
        assert response.json()["added"] == ["cp-flag"]
        assert response.json()["removed"] == ["cp-approve"]

        response = client_as("outsider").put(
            "/api/v1/roles/r-reviewer/permissions", json={"permission_ids": []}
        )
        assert response.status_code == 403


class TestPermissionRoutes:
    def test_create(self, client_as):
        client = client_as("member")
        response = client.post("/api/v1/roles/permissions", json={"name": "archive:page", "scope": Scopes.PROJECT})
        assert response.status_code == 201
        response = client.post("/api/v1/roles/permissions", json={"name": "reboot:server", "scope": Scopes.SYSTEM})
        assert response.status_code == 403
        response = client.post("/api/v1/roles/permissions", json={"name": "Not A Name", "scope": Scopes.PROJECT})
        assert response.status_code == 422

    def test_list_shows_own_permissions(self, client_as):
        response = client_as("member").get("/api/v1/roles/permissions")
        assert [p["name"] for p in response.json()] == ["approve:page", "flag:page"]

    def test_delete_in_use(self, client_as):
        assert client_as("member").delete("/api/v1/roles/permissions/cp-approve").status_code == 409


class TestProjectPermissionRoutes:
    def test_list(self, client_as):
        response = client_as("owner").get("/api/v1/projects/p1/permissions")
        assert response.status_code == 200
        assert response.json() == {"member": [perm_id(Scopes.PROJECT, Permissions.SECTION.DELETE)]}
        assert client_as("outsider").get("/api/v1/projects/p1/permissions").status_code == 403

    def test_grant(self, client_as, supabase):
        body = {"user_ids": ["guest"], "permission_ids": [perm_id(Scopes.PROJECT, Permissions.PAGE.CREATE)]}
        assert client_as("dev").post("/api/v1/projects/p1/permissions", json=body).status_code == 403

        response = client_as("owner").post("/api/v1/projects/p1/permissions", json=body)
        assert response.status_code == 201
        assert len(response.json()) == 1
        assert supabase.rows("project_user_permissions", user_id="guest", project_id="p1")

    def test_missing_project(self, client_as):
        body = {"user_ids": ["guest"], "permission_ids": []}
        assert client_as("owner").post("/api/v1/projects/missing/permissions", json=body).status_code == 404


class TestInvitationRoutes:
    def test_create(self, client_as, monkeypatch):
        body = {"email": "fresh@acme.dev", "workspace_id": "w1"}
        response = client_as("owner").post("/api/v1/invitations", json=body)
        assert response.status_code == 201
        assert response.json()["token"]

        assert client_as("member").post("/api/v1/invitations", json=body).status_code == 403

        monkeypatch.setattr(settings, "invitation_limit", 2)
        assert client_as("owner").post("/api/v1/invitations", json=body).status_code == 429

    def test_create_rejects_project_of_another_workspace(self, client_as, supabase):
        body = {"email": "fresh@acme.dev", "workspace_id": "w1", "project_id": "p9"}
        response = client_as("super").post("/api/v1/invitations", json=body)
        assert response.status_code == 400
        assert not supabase.rows("invitations", email="fresh@acme.dev")

    def test_token_lookup_is_public(self, client_as):
        client = client_as()
        response = client.get("/api/v1/invitations/token/tok-valid")
        assert response.status_code == 200
        assert response.json()["email"] == "newbie@example.com"
        assert "token" not in response.json()
        assert client.get("/api/v1/invitations/token/tok-expired").status_code == 410
        assert client.get("/api/v1/invitations/token/tok-unknown").status_code == 404

    def test_accept(self, client_as, supabase):
        assert client_as().post("/api/v1/invitations/token/tok-valid/accept").status_code == 401
        assert client_as("dev").post("/api/v1/invitations/token/tok-valid/accept").status_code == 400

        client = client_as("newbie")
        response = client.post("/api/v1/invitations/token/tok-valid/accept")
        assert response.status_code == 200
        assert response.json()["workspace_id"] == "w1"
        assert supabase.rows("workspace_members", workspace_id="w1", user_id="newbie")
        assert client.post("/api/v1/invitations/token/tok-valid/accept").status_code == 409

    def test_pending_and_cancel(self, client_as):
        response = client_as("newbie").get("/api/v1/invitations/pending")
        assert [i["id"] for i in response.json()] == ["i4", "i1"]

        assert client_as("newbie").delete("/api/v1/invitations/i1").status_code == 403
        assert client_as("admin").delete("/api/v1/invitations/i1").status_code == 204
        assert client_as("admin").get("/api/v1/invitations/i1").status_code == 404


class TestAuthorizationRoutes:
    def test_check(self, client_as):
        body = {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p1"}
        response = client_as("dev").post("/api/v1/authorization/check", json=body)
        assert response.json()["allowed"] is True
        assert response.json()["source"] == "role"

        response = client_as("member").post("/api/v1/authorization/check", json=body)
        assert response.json()["allowed"] is False

        response = client_as("super").post("/api/v1/authorization/check", json=body)
        assert response.json() == {"allowed": True, "source": "super_admin", "reason": None}

        assert client_as().post("/api/v1/authorization/check", json=body).status_code == 401

    def test_check_batch(self, client_as):
        body = {"resources": [
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p1"},
            {"permission": Permissions.PAGE.EDIT, "scope": Scopes.PROJECT, "resource_id": "p2"},
        ]}
        response = client_as("dev").post("/api/v1/authorization/check-batch", json=body)
        assert response.json() == {"project:p1:edit:page": True, "project:p2:edit:page": False}

        body["resources"].append({"permission": Permissions.PROJECT.DELETE, "scope": Scopes.PROJECT, "resource_id": "p1"})
        response = client_as("super").post("/api/v1/authorization/check-batch", json=body)
        assert response.json() == {
            "project:p1:edit:page": True, "project:p2:edit:page": True, "project:p1:delete:project": True,
        }

    def test_my_permissions(self, client_as):
        response = client_as("dev").get(
            "/api/v1/authorization/me/permissions", params={"scope": Scopes.PROJECT, "resource_id": "p1"}
        )
        assert response.status_code == 200
        assert Permissions.PAGE.EDIT in response.json()["permissions"]["role"]
        assert response.json()["is_super_admin"] is False


def test_require_permission_dependency(supabase):
    mini = FastAPI()

    @mini.get("/projects/{project_id}/pages")
    async def list_pages(principal: Principal = Depends(
        require_permission(Permissions.PAGE.EDIT, Scopes.PROJECT, "project_id")
    )):
        return {"user_id": principal.id}

    mini.dependency_overrides[get_supabase] = lambda: supabase

    def call(user_id, project_id="p1"):
        principal = load_principal(supabase, user_id)
        mini.dependency_overrides[get_session] = lambda: StaticSession(principal)
        return TestClient(mini).get(f"/projects/{project_id}/pages")

    assert call("dev").json() == {"user_id": "dev"}
    assert call("super", "p9").status_code == 200
    assert call("member").status_code == 403
    assert call(None).status_code == 401
