"""
Unit tests for the route guard middleware.
"""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from service_guardian.app.middleware import RouteGuardianMiddleware
from service_guardian.app.rules.engine import RouteGuardian
from service_guardian.app.rules.models import GuardPolicy
from service_guardian.app.subjects import (
    ApiKeySubjectResolver, ApiKeyVault, JwtSubjectResolver, StaticSubjectResolver
)
from shared.metrics import MetricsCollector
from shared.test_helpers import MockTokenGenerator, TestDataFactory


@pytest.fixture
def users():
    return {user.user_id: user for user in TestDataFactory.create_test_users()}


@pytest.fixture
def tokens():
    return MockTokenGenerator(secret="test-secret")


@pytest.fixture
def guardian():
    """Guardian for a blog API: everybody reads, admins write."""
    return (RouteGuardian()
            .default_policy(GuardPolicy.DENY)
            .allow("GET", "/api/blog/entry", "*")
            .allow("*", "/api/blog/entry", "ADMIN"))


@pytest.fixture
def metrics():
    return MetricsCollector("guardian-test")


def build_app(guardian, resolvers, metrics=None) -> FastAPI:
    app = FastAPI()

    @app.get("/api/blog/entry")
    async def read_entry(request: Request):
        return {"entry": "hello", "subjects": request.state.subjects}

    @app.post("/api/blog/entry")
    async def write_entry():
        return {"created": True}

    @app.get("/public")
    async def public():
        return {"status": "ok"}

    app.add_middleware(
        RouteGuardianMiddleware,
        guardian=guardian,
        resolvers=resolvers,
        guarded_path="/api",
        metrics=metrics
    )
    return app


@pytest.fixture
def client(guardian, metrics):
    return TestClient(build_app(guardian, [JwtSubjectResolver(secret="test-secret")], metrics))


class TestRouteGuardianMiddleware:
    """Guarded requests through a FastAPI app."""

    def test_unauthenticated_request(self, client):
        """Test that a guarded route without identity answers 401."""
        response = client.get("/api/blog/entry")

        assert response.status_code == 401
        data = response.json()
        assert data["code"] == "AUTHENTICATION_ERROR"
        assert data["details"]["path"] == "/api/blog/entry"

    def test_invalid_token_is_unauthenticated(self, client):
        """Test that a bad token is treated as no identity."""
        response = client.get("/api/blog/entry", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401

    def test_granted_request(self, client, tokens, users):
        """Test that a granted request reaches the handler with its subjects."""
        response = client.get("/api/blog/entry", headers=tokens.bearer(users["user1"]))

        assert response.status_code == 200
        assert response.json()["subjects"] == "CLIENT"

    def test_denied_request(self, client, tokens, users):
        """Test that a denied request answers 403."""
        response = client.post("/api/blog/entry", headers=tokens.bearer(users["user1"]))

        assert response.status_code == 403
        data = response.json()
        assert data["code"] == "AUTHORIZATION_ERROR"
        assert data["details"]["method"] == "POST"
        assert data["details"]["subjects"] == "CLIENT"

    def test_admin_may_write(self, client, tokens, users):
        """Test that the subject-specific rule grants admins."""
        response = client.post("/api/blog/entry", headers=tokens.bearer(users["user2"]))

        assert response.status_code == 200
        assert response.json() == {"created": True}

    def test_unguarded_path(self, client):
        """Test that paths outside the guarded prefix pass through."""
        response = client.get("/public")

        assert response.status_code == 200

    def test_decisions_are_recorded(self, client, tokens, users, metrics):
        """Test that each decision increments the decision counter."""
        client.get("/api/blog/entry", headers=tokens.bearer(users["user1"]))
        client.post("/api/blog/entry", headers=tokens.bearer(users["user1"]))

        assert metrics.registry.get_sample_value(
            "guard_decisions_total", {"verb": "GET", "granted": "true"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "guard_decisions_total", {"verb": "POST", "granted": "false"}
        ) == 1.0

    def test_reload_applies_to_next_request(self, guardian, client, tokens, users):
        """Test that newly published rules govern subsequent requests."""
        headers = tokens.bearer(users["user1"])
        assert client.post("/api/blog/entry", headers=headers).status_code == 403

        guardian.allow("POST", "/api/blog/entry", "CLIENT")

        assert client.post("/api/blog/entry", headers=headers).status_code == 200


class TestResolverChain:
    """Resolver ordering."""

    def test_first_identity_wins(self, guardian):
        """Test that the first resolver with an identity supplies subjects."""
        vault = ApiKeyVault.model_validate(TestDataFactory.create_api_key_vault())
        app = build_app(guardian, [
            ApiKeySubjectResolver(vault),
            StaticSubjectResolver("ADMIN"),
        ])
        client = TestClient(app)

        by_key = client.post(
            "/api/blog/entry",
            headers={"x-client-id": "reporting", "x-client-key": "reporting-key"}
        )
        by_static = client.post("/api/blog/entry")

        assert by_key.status_code == 403
        assert by_static.status_code == 200

    def test_empty_subjects_are_an_identity(self, guardian):
        """Test that a role-less identity is evaluated, not rejected."""
        client = TestClient(build_app(guardian, [StaticSubjectResolver("")]))

        assert client.get("/api/blog/entry").status_code == 200
        assert client.post("/api/blog/entry").status_code == 403

    def test_several_guarded_prefixes(self, guardian):
        """Test that every listed prefix is guarded and others pass through."""
        app = FastAPI()

        @app.get("/public")
        async def public():
            return {"status": "ok"}

        @app.get("/open")
        async def open_route():
            return {"status": "ok"}

        app.add_middleware(
            RouteGuardianMiddleware,
            guardian=guardian,
            resolvers=[],
            guarded_path=["/api", "/public"]
        )
        client = TestClient(app)

        assert client.get("/api/blog/entry").status_code == 401
        assert client.get("/public").status_code == 401
        assert client.get("/open").status_code == 200
