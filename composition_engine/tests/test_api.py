"""
Tests: HTTP surface (FastAPI TestClient).

Run with:
    pytest composition_engine/tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from composition_engine.api import app
from composition_engine.api.routes import get_engine
from composition_engine.core.catalog_loader import seed_catalog
from composition_engine.core.engine_service import CompositionEngine


@pytest.fixture()
def client():
    engine = CompositionEngine()
    seed_catalog(engine)
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestCatalog:
    def test_list_capabilities_with_filters(self, client):
        response = client.get("/api/capabilities", params={"tags": ["crm", "sales"]})
        assert response.status_code == 200
        assert [c["key"] for c in response.json()] == ["crm-pipeline"]

    def test_register_capability(self, client):
        response = client.post(
            "/api/capabilities", json={"key": "sms", "name": "SMS", "category": "Communication"}
        )
        assert response.status_code == 201
        assert response.json()["current_version"] == "1.0.0"

    def test_register_duplicate_is_conflict(self, client):
        response = client.post("/api/capabilities", json={"key": "auth"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_KEY"

    def test_register_unknown_dependency(self, client):
        response = client.post("/api/capabilities", json={"key": "c", "dependencies": ["ghost"]})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UNKNOWN_CAPABILITY"

    def test_bundles(self, client):
        assert [b["key"] for b in client.get("/api/bundles").json()] == ["sales-pro", "sales-starter"]
        response = client.post("/api/bundles", json={"key": "x", "name": "X", "capabilities": []})
        assert response.status_code == 422
        assert response.json()["error"]["issues"]

    def test_install_bundle_and_capabilities(self, client):
        response = client.post(
            "/api/installations/acme/crm-suite",
            json={"bundle": "sales-starter", "capabilities": ["notifications"]},
        )
        assert response.status_code == 200
        installed = set(response.json()["installed"])
        assert {"crm-contacts", "crm-pipeline", "notifications", "auth"} <= installed

    def test_failed_bundle_install_commits_nothing(self):
        engine = CompositionEngine()
        seed_catalog(engine)
        engine.registry.deprecate("reporting")
        app.dependency_overrides[get_engine] = lambda: engine
        try:
            response = TestClient(app).post(
                "/api/installations/acme/crm-suite",
                json={"bundle": "sales-starter", "capabilities": ["reporting"]},
            )
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 422
        assert any("reporting" in issue for issue in response.json()["error"]["issues"])
        assert engine.installations.repository.load("acme", "crm-suite") is None

    def test_bundle_config_merged_with_request_config(self, client):
        response = client.post(
            "/api/installations/acme/crm-suite",
            json={
                "bundle": "sales-pro",
                "config": {"crm-automation": {"max_active_rules": 10}},
            },
        )
        assert response.status_code == 200
        config = response.json()["config"]
        assert config["crm-automation"] == {"max_active_rules": 10}
        assert config["notifications"] == {"channels": ["email", "slack"]}


class TestCompatibility:
    def test_score(self, client):
        response = client.get("/api/compat/crm-suite/salesforce", params={"tenant_id": "acme"})
        assert response.status_code == 200
        body = response.json()
        assert 0 <= body["total_score"] <= 100
        assert set(body["breakdown"]) == {
            "capability_match", "integration_readiness", "compliance", "ecosystem_maturity"
        }

    def test_matrix(self, client):
        response = client.get("/api/compat/crm-suite/matrix", params={"min_score": 40})
        assert response.status_code == 200
        assert all(row["total_score"] >= 40 for row in response.json())

    def test_unknown_system_is_404(self, client):
        assert client.get("/api/compat/crm-suite/nope").status_code == 404


class TestPolicies:
    def test_upsert_activate_authorize(self, client):
        denied = client.post(
            "/api/authorize", json={"tenant_id": "acme", "resource": "user", "action": "admin"}
        )
        assert denied.json()["allow"] is False

        created = client.post("/api/policies/acme", json={
            "policy_json": [{"resource": "user", "action": "admin", "effect": "allow"}],
            "version": "1",
        })
        assert created.status_code == 201
        policy_id = created.json()["id"]

        activated = client.post(f"/api/policies/acme/{policy_id}/activate")
        assert activated.json()["status"] == "active"

        allowed = client.post(
            "/api/authorize", json={"tenant_id": "acme", "resource": "user", "action": "admin"}
        )
        assert allowed.json()["allow"] is True
        assert allowed.json()["layer"] == "tenant"

        listed = client.get("/api/policies/acme").json()
        assert [p["id"] for p in listed] == [policy_id]

    def test_invalid_policy_is_422(self, client):
        response = client.post(
            "/api/policies/acme", json={"policy_json": "not json", "version": "1"}
        )
        assert response.status_code == 422

    def test_activate_unknown_is_404(self, client):
        assert client.post("/api/policies/acme/missing/activate").status_code == 404


class TestRuntime:
    def test_load_app(self, client):
        client.post("/api/installations/acme/crm-suite", json={"capabilities": ["crm-automation"]})
        response = client.get("/api/apps/acme/crm-suite")
        assert response.status_code == 200
        keys = [e["capability_key"] for e in response.json()["capabilities"]]
        assert keys.index("crm-pipeline") < keys.index("crm-automation")

    def test_load_missing_app_is_404(self, client):
        assert client.get("/api/apps/acme/crm-suite").status_code == 404
