"""Integration tests for /me, JWKS discovery, health and the error envelope."""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from systemrpg.infrastructure.api.app import create_app


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def rs256_client(rs256_settings, db_manager):
    app = create_app(settings=rs256_settings, db_manager=db_manager)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestMe:

    @pytest.mark.asyncio
    async def test_returns_identity(self, client, admin_token):
        response = await client.get("/api/v1/me", headers=_auth(admin_token))

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "admin-001",
            "username": "master_bob",
            "roles": ["ADMIN", "USER"],
        }

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        body = response.json()
        assert set(body) == {"error", "message", "timestamp"}
        assert body["message"] == "Missing or malformed Authorization header"

    @pytest.mark.asyncio
    async def test_expired_token_in_portuguese(self, client, issue_token):
        token = issue_token(ttl=timedelta(seconds=-1))

        response = await client.get("/api/v1/me", headers={**_auth(token), "Accept-Language": "pt-BR"})

        assert response.status_code == 401
        assert response.json()["message"] == "Token inválido"

    @pytest.mark.asyncio
    async def test_refresh_token_is_rejected(self, client, refresh_token):
        response = await client.get("/api/v1/me", headers=_auth(refresh_token))

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_unknown_protected_path_requires_auth(self, client):
        response = await client.get("/api/v1/campaigns")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_path_with_token_is_not_found(self, client, access_token):
        response = await client.get("/api/v1/campaigns", headers=_auth(access_token))

        assert response.status_code == 404
        assert response.json()["message"] == "Resource not found"


class TestJwks:

    @pytest.mark.asyncio
    async def test_hmac_publishes_empty_set(self, client):
        response = await client.get("/api/v1/.well-known/jwks.json")

        assert response.status_code == 200
        assert response.json() == {"keys": []}

    @pytest.mark.asyncio
    async def test_rsa_publishes_public_key(self, rs256_client):
        response = await rs256_client.get("/api/v1/.well-known/jwks.json")

        assert response.status_code == 200
        keys = response.json()["keys"]
        assert len(keys) == 1
        assert keys[0]["kty"] == "RSA"
        assert keys[0]["kid"] == "systemrpg-backend-key-2025"
        assert "d" not in keys[0]


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_is_public(self, client):
        response = await client.get("/api/v1/actuator/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "UP"
        assert data["components"]["database"]["status"] == "UP"


class TestRequestHandling:

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/api/v1/actuator/health", headers={"X-Correlation-ID": "cid_test123"})
        assert response.headers["x-correlation-id"] == "cid_test123"

    @pytest.mark.asyncio
    async def test_correlation_id_is_generated(self, client):
        response = await client.get("/api/v1/actuator/health")
        assert response.headers["x-correlation-id"].startswith("cid_")

    @pytest.mark.asyncio
    async def test_correlation_id_on_rejected_request(self, client):
        response = await client.get("/api/v1/me", headers={"X-Correlation-ID": "cid_rejected"})

        assert response.status_code == 401
        assert response.headers["x-correlation-id"] == "cid_rejected"

    @pytest.mark.asyncio
    async def test_validation_envelope(self, client):
        response = await client.post("/api/v1/introspect", content="not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 422
        body = response.json()
        assert body["status"] == 422
        assert body["type"] == "validation"
        assert body["message"] == "Request validation failed"
        assert body["path"] == "/api/v1/introspect"
        assert "timestamp" in body
