"""
Unit tests for the Route Guardian service.
"""

import pytest
from fastapi.testclient import TestClient

from service_guardian.app.main import GuardianService, SERVICE_NAME
from service_guardian.app.rules.engine import RouteGuardian
from service_guardian.app.rules.models import HTTP_VERBS
from shared.config import get_config
from shared.test_helpers import MockTokenGenerator, TestDataFactory, write_json


@pytest.fixture
def access_file(tmp_path):
    return write_json(tmp_path / "access.json", TestDataFactory.create_access_document())


@pytest.fixture
def config(tmp_path, access_file):
    """Service configuration pointing at temporary rule sources, management unguarded."""
    return get_config(
        SERVICE_NAME, 8020,
        access_file=access_file,
        api_keys_file=str(tmp_path / "apikeys.json"),
        jwt_secret="test-secret",
        guard_management=False
    )


@pytest.fixture
def service(config):
    return GuardianService(config=config)


@pytest.fixture
def client(service):
    return TestClient(service.app)


@pytest.fixture
def users():
    return {user.user_id: user for user in TestDataFactory.create_test_users()}


class TestGuardianService:
    """Service endpoints."""

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "guardian"
        assert data["guarded_path"] == "/api"
        assert "hot_reload" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health check reports the access file."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["access_file"] == "ok"

    def test_health_with_missing_access_file(self, tmp_path):
        """Test health check with no access file on disk."""
        config = get_config(SERVICE_NAME, 8020, access_file=str(tmp_path / "missing.json"))
        client = TestClient(GuardianService(config=config).app)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["dependencies"]["access_file"] == "missing"

    def test_check_granted(self, client):
        """Test a decision granted by a subject-specific rule."""
        response = client.post("/guardian/check", json={
            "verb": "GET", "path": "/admin", "subjects": "ADMIN"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["granted"] is True
        assert data["tier"] == "individual"
        assert len(data["matched_rules"]) == 1
        assert data["matched_rules"][0]["subject"] == "ADMIN"

    def test_check_denied_by_wildcard(self, client):
        """Test that the wildcard deny applies to non-admins."""
        response = client.post("/guardian/check", json={
            "verb": "GET", "path": "/admin/part2", "subjects": "PROD"
        })

        data = response.json()
        assert data["granted"] is False
        assert data["tier"] == "wildcard"

    def test_check_anonymous_default(self, client):
        """Test that omitted subjects fall back to the default policy."""
        response = client.post("/guardian/check", json={"verb": "GET", "path": "/blog"})

        data = response.json()
        assert data["granted"] is False
        assert data["tier"] == "default"
        assert data["matched_rules"] == []

    def test_check_uses_configured_anonymous_subject(self, tmp_path):
        """Test that omitted subjects are evaluated as the configured anonymous subject."""
        access_file = write_json(tmp_path / "guest.json", TestDataFactory.create_access_document(
            rules=["allow GET /catalog GUEST"]
        ))
        config = get_config(SERVICE_NAME, 8020, access_file=access_file, anonymous_subject="GUEST")
        client = TestClient(GuardianService(config=config).app)

        anonymous = client.post("/guardian/check", json={"verb": "GET", "path": "/catalog"})
        explicit = client.post("/guardian/check", json={"verb": "GET", "path": "/catalog", "subjects": "CLIENT"})

        assert anonymous.json()["granted"] is True
        assert anonymous.json()["tier"] == "individual"
        assert explicit.json()["granted"] is False

    def test_check_empty_verb(self, client):
        """Test that an empty verb is always denied."""
        response = client.post("/guardian/check", json={"verb": "", "path": "/admin", "subjects": "ADMIN"})

        assert response.json()["granted"] is False

    def test_check_validation(self, client):
        """Test that a decision query needs a verb and a path."""
        response = client.post("/guardian/check", json={"subjects": "ADMIN"})

        assert response.status_code == 422

    def test_list_rules(self, client):
        """Test rule enumeration."""
        response = client.get("/guardian/rules")

        assert response.status_code == 200
        data = response.json()
        assert data["default_policy"] == "deny"
        assert data["total"] == 4 * len(HTTP_VERBS)
        assert len(data["rules"]) == data["total"]

    def test_reload(self, client, access_file):
        """Test that reload publishes the rewritten access file."""
        write_json(access_file, TestDataFactory.create_access_document(
            default="allow", rules=["deny DELETE /admin *"]
        ))

        response = client.post("/guardian/reload")

        assert response.status_code == 200
        data = response.json()
        assert data["reloaded"] is True
        assert data["default_policy"] == "allow"
        assert data["total_rules"] == len(HTTP_VERBS)
        assert data["paths"] == ["/admin"]

        check = client.post("/guardian/check", json={"verb": "GET", "path": "/blog"})
        assert check.json()["granted"] is True

    def test_reload_without_access_file(self, config):
        """Test that reload needs a configured access file."""
        client = TestClient(GuardianService(config=config, guardian=RouteGuardian()).app)

        response = client.post("/guardian/reload")

        assert response.status_code == 500
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_metrics_endpoint(self, client):
        """Test that decisions show up in the metrics export."""
        client.post("/guardian/check", json={"verb": "GET", "path": "/admin", "subjects": "ADMIN"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "guard_decisions_total" in response.text


class TestGuardedRoutes:
    """Requests below the guarded path."""

    def test_no_identity(self, client):
        """Test that a guarded request without a token answers 401."""
        response = client.get("/api/reports")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_denied_identity(self, client, users):
        """Test that a known identity without a rule answers 403."""
        headers = MockTokenGenerator(secret="test-secret").bearer(users["user1"])

        response = client.get("/api/reports", headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == "AUTHORIZATION_ERROR"

    def test_api_key_resolver_configured(self, tmp_path, access_file):
        """Test that an existing key vault enables API key subjects."""
        keys_file = write_json(tmp_path / "keys.json", TestDataFactory.create_api_key_vault())
        config = get_config(SERVICE_NAME, 8020, access_file=access_file, api_keys_file=keys_file)

        service = GuardianService(config=config)

        assert [resolver.name for resolver in service.resolvers] == ["api_key"]


class TestManagementRoutes:
    """Rule listing and reload behind the guard."""

    @pytest.fixture
    def client(self, tmp_path):
        access_file = write_json(tmp_path / "access.json", TestDataFactory.create_access_document(
            rules=["allow GET|POST /guardian/* ADMIN"]
        ))
        config = get_config(SERVICE_NAME, 8020, access_file=access_file, jwt_secret="test-secret")
        return TestClient(GuardianService(config=config).app)

    @pytest.fixture
    def tokens(self):
        return MockTokenGenerator(secret="test-secret")

    def test_management_requires_identity(self, client):
        """Test that listing and reload answer 401 without a token."""
        assert client.get("/guardian/rules").status_code == 401
        assert client.post("/guardian/reload").status_code == 401

    def test_management_requires_rule(self, client, tokens, users):
        """Test that an identity without a management rule answers 403."""
        headers = tokens.bearer(users["user1"])

        assert client.get("/guardian/rules", headers=headers).status_code == 403
        assert client.post("/guardian/reload", headers=headers).status_code == 403

    def test_management_granted_by_rule(self, client, tokens, users):
        """Test that the access file can grant management to admins."""
        headers = tokens.bearer(users["user2"])

        rules = client.get("/guardian/rules", headers=headers)
        reload = client.post("/guardian/reload", headers=headers)

        assert rules.status_code == 200
        assert rules.json()["total"] == len(HTTP_VERBS)
        assert reload.status_code == 200

    def test_decision_queries_stay_open(self, client):
        """Test that /guardian/check is not behind the guard."""
        response = client.post("/guardian/check", json={"verb": "GET", "path": "/guardian/rules"})

        assert response.status_code == 200
        assert response.json()["granted"] is False
