"""
Integration tests for the authorization endpoints.

Covers the full request path: bearer token -> ActorMiddleware -> Gate ->
endpoint, including the documented refusal payloads and policy hot reload.
"""

import asyncio

import jwt
import pytest
import yaml
from fastapi.testclient import TestClient

from agriauth.audit.models import AuditAction, AuditQuery, AuditStatus
from agriauth.audit.storage import InMemoryAuditStorage, JsonLinesAuditStorage
from agriauth.config import AuthzConfig, PolicyConfig
from agriauth.config.policy import DEFAULT_PERMISSIONS, DEFAULT_ROLE_HIERARCHY, PolicyDocument
from agriauth.core.actor import Actor
from agriauth.core.errors import ConfigurationFault, RoleCycleError
from agriauth.core.policy_store import PolicyStore
from agriauth.main import build_audit_storage, build_policy_store, create_app
from agriauth.middleware.actor import create_actor_token


class TestHealth:
    """Test cases for the health endpoint."""

    def test_health_reports_policy_version(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["policy"]["version"] == 1
        assert data["policy"]["permissions"] == len(DEFAULT_PERMISSIONS)
        assert data["audit"]["storage"] == "InMemoryAuditStorage"

    def test_health_needs_no_actor(self, client):
        assert client.get("/api/v1/health").status_code == 200


class TestRefusals:
    """Test cases for the refusal payloads over HTTP."""

    def test_unauthenticated(self, client):
        response = client.get("/api/v1/policy/roles")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Authentication required"}

    def test_expired_token_is_unauthenticated(self, client, token_settings):
        token = create_actor_token(Actor(id="a-1", role="admin"), token_settings, expires_minutes=-5)
        response = client.get("/api/v1/policy/roles", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_malformed_location_claim_still_authenticates(self, client, token_settings):
        token = jwt.encode(
            {"sub": "admin-3", "role": "admin", "location": 42,
             "iss": token_settings.issuer, "aud": token_settings.audience},
            token_settings.secret_key,
            algorithm=token_settings.algorithm,
        )

        response = client.get("/api/v1/policy/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["actor_id"] == "admin-3"

    def test_unauthorized(self, client, auth_headers):
        response = client.get("/api/v1/policy/roles", headers=auth_headers("farmer"))

        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "message": "Access denied: insufficient permissions",
            "required": ["system:monitor"],
            "current": "farmer",
        }

    def test_staff_role_is_not_admin(self, client, auth_headers):
        response = client.post("/api/v1/policy/reload", headers=auth_headers("analytics_manager"))

        assert response.status_code == 403
        assert response.json()["required"] == ["system:configure"]

    def test_undefined_permission_is_server_fault(self, audit_storage, token_settings, auth_headers):
        """A guard whose key is missing from the catalog refuses even admins."""
        permissions = {k: v for k, v in DEFAULT_PERMISSIONS.items() if k != "system:monitor"}
        store = PolicyStore.from_policy(
            PolicyDocument(roles=DEFAULT_ROLE_HIERARCHY, permissions=permissions)
        )
        app = create_app(config=AuthzConfig(), policy_store=store, audit_storage=audit_storage,
                         token_settings=token_settings, configure_logging=False)

        with TestClient(app) as client:
            response = client.get("/api/v1/policy/roles", headers=auth_headers("admin"))

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Permission not defined"}


class TestPolicyInspection:
    """Test cases for the policy read endpoints."""

    def test_own_access_for_admin(self, client, auth_headers):
        response = client.get("/api/v1/policy/me", headers=auth_headers("admin", "admin-9"))

        assert response.status_code == 200
        data = response.json()
        assert data["actor_id"] == "admin-9"
        assert data["role"] == "admin"
        assert "pricing_manager" in data["inherited_roles"]
        assert data["permissions"] == sorted(DEFAULT_PERMISSIONS)
        assert data["policy_version"] == 1

    def test_own_access_for_staff(self, client, auth_headers):
        response = client.get("/api/v1/policy/me", headers=auth_headers("produce_manager"))

        data = response.json()
        assert data["inherited_roles"] == ["produce_manager"]
        assert data["permissions"] == [
            "product:approve", "product:read", "product:suspend", "product:write",
        ]

    def test_own_access_requires_actor(self, client):
        assert client.get("/api/v1/policy/me").status_code == 401

    def test_role_hierarchy(self, client, auth_headers):
        response = client.get("/api/v1/policy/roles", headers=auth_headers("admin"))

        assert response.status_code == 200
        data = response.json()
        assert data["total_roles"] == 9
        assert data["roles"]["farmer_support"] == {"inherits": [], "closure": ["farmer_support"]}
        assert len(data["roles"]["admin"]["closure"]) == 7

    def test_permission_catalog(self, client, auth_headers):
        response = client.get("/api/v1/policy/permissions", headers=auth_headers("admin"))

        assert response.status_code == 200
        data = response.json()
        assert data["total_permissions"] == len(DEFAULT_PERMISSIONS)
        assert data["permissions"]["product:approve"] == ["admin", "produce_manager"]


class TestPolicyReload:
    """Test cases for policy hot reload."""

    @pytest.fixture
    def policy_file(self, temp_directory):
        path = temp_directory / "policy.yaml"
        with open(path, "w") as file:
            yaml.safe_dump(PolicyDocument.default().model_dump(), file)
        return path

    @pytest.fixture
    def app_config(self, policy_file):
        return AuthzConfig(policy=PolicyConfig(path=str(policy_file)))

    @pytest.fixture
    def policy_store(self, policy_file):
        return PolicyStore.from_file(policy_file)

    def test_reload_applies_new_policy(self, client, auth_headers, policy_file, audit_storage):
        permissions = dict(DEFAULT_PERMISSIONS)
        permissions["product:approve"] = ["admin"]
        with open(policy_file, "w") as file:
            yaml.safe_dump({"roles": DEFAULT_ROLE_HIERARCHY, "permissions": permissions}, file)

        assert client.get("/api/v1/policy/me", headers=auth_headers("produce_manager")).json()[
            "permissions"] == ["product:approve", "product:read", "product:suspend", "product:write"]

        response = client.post("/api/v1/policy/reload", headers=auth_headers("admin", "admin-1"))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Policy reloaded",
            "data": {"version": 2, "roles": 9, "permissions": len(DEFAULT_PERMISSIONS)},
        }

        me = client.get("/api/v1/policy/me", headers=auth_headers("produce_manager")).json()
        assert "product:approve" not in me["permissions"]
        assert me["policy_version"] == 2

        page = asyncio.run(audit_storage.query(AuditQuery(actions=[AuditAction.POLICY_RELOAD])))
        assert page.total == 1
        entry = page.entries[0]
        assert entry.actor_id == "admin-1"
        assert entry.target_id == "2"
        assert entry.details == {"previous_version": 1, "version": 2, "source": str(policy_file)}
        assert entry.user_agent == "pytest-client"
        assert entry.status == AuditStatus.SUCCESS

    def test_failed_reload_keeps_current_policy(self, client, auth_headers, policy_file,
                                                audit_storage):
        with open(policy_file, "w") as file:
            yaml.safe_dump({"roles": {"admin": ["farmer_support"], "farmer_support": ["admin"]},
                            "permissions": {}}, file)

        response = client.post("/api/v1/policy/reload", headers=auth_headers("admin"))

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Policy reload failed"}

        health = client.get("/api/v1/health").json()
        assert health["policy"]["version"] == 1

        roles = client.get("/api/v1/policy/roles", headers=auth_headers("admin"))
        assert roles.status_code == 200

        page = asyncio.run(audit_storage.query(AuditQuery(status=AuditStatus.FAILURE)))
        assert page.total == 1
        assert page.entries[0].action == AuditAction.POLICY_RELOAD
        assert "cycle" in page.entries[0].details["error"]

    def test_reload_disabled(self, policy_store, audit_storage, token_settings, auth_headers,
                             policy_file):
        config = AuthzConfig(policy=PolicyConfig(path=str(policy_file), reload_enabled=False))
        app = create_app(config=config, policy_store=policy_store, audit_storage=audit_storage,
                         token_settings=token_settings, configure_logging=False)

        with TestClient(app) as client:
            response = client.post("/api/v1/policy/reload", headers=auth_headers("admin"))

        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "Policy reload is disabled"}
        assert policy_store.snapshot().version == 1

    def test_reload_runs_off_the_event_loop(self, client, auth_headers, policy_store,
                                            monkeypatch):
        seen = []
        original = policy_store.reload_from_file

        def reload_from_file(path=None):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return original(path)

        monkeypatch.setattr(policy_store, "reload_from_file", reload_from_file)

        response = client.post("/api/v1/policy/reload", headers=auth_headers("admin"))

        assert response.status_code == 200
        assert seen == ["worker thread"]


class TestAppFactory:
    """Test cases for building the app from configuration."""

    def test_default_policy_when_no_path(self):
        store = build_policy_store(AuthzConfig())

        assert store.snapshot().source is None
        assert "admin" in store.snapshot().graph

    def test_cyclic_policy_file_prevents_startup(self, temp_directory):
        path = temp_directory / "policy.yaml"
        with open(path, "w") as file:
            yaml.safe_dump({"roles": {"a": ["b"], "b": ["a"]}}, file)

        with pytest.raises(RoleCycleError):
            create_app(config=AuthzConfig(policy=PolicyConfig(path=str(path))),
                       audit_storage=InMemoryAuditStorage(), configure_logging=False)

    def test_audit_backends(self, temp_directory):
        config = AuthzConfig(config_dir=str(temp_directory))

        assert isinstance(build_audit_storage(config), InMemoryAuditStorage)

        config.audit.backend = "jsonl"
        storage = build_audit_storage(config)
        assert isinstance(storage, JsonLinesAuditStorage)
        assert storage.path == temp_directory / "audit" / "actions.jsonl"

    def test_unknown_audit_backend(self):
        config = AuthzConfig()
        config.audit.backend = "postgres"

        with pytest.raises(ConfigurationFault):
            build_audit_storage(config)
