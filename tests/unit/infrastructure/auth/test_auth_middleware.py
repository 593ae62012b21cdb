from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import structlog
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from starlette.middleware.base import BaseHTTPMiddleware

from systemrpg.core.messages import MessageSource
from systemrpg.infrastructure.auth import middleware as auth_middleware
from systemrpg.infrastructure.auth.middleware import (
    VALIDATION_ERROR_KEY,
    AuthenticationMiddleware,
    authenticate_request,
    extract_bearer_token,
    is_public_path,
    strip_context_path,
)
from systemrpg.infrastructure.auth.token_types import AuthFailure, RequestIdentity


class TestPathMatching:

    @pytest.mark.parametrize(
        "path",
        ["/login", "/refresh", "/refresh/extra", "/actuator/health", "/swagger-ui/index.html",
         "/favicon.ico", "/.well-known/jwks.json"],
    )
    def test_public_paths(self, path):
        assert is_public_path(path) is True

    @pytest.mark.parametrize("path", ["/me", "/revoke", "/refreshments", "/loginx", "/", "/api/v1/login"])
    def test_protected_paths(self, path):
        assert is_public_path(path) is False

    def test_context_path_is_stripped_before_matching(self):
        assert is_public_path("/api/v1/login", "/api/v1") is True
        assert is_public_path("/api/v1/me", "/api/v1") is False

    def test_strip_context_path(self):
        assert strip_context_path("/api/v1/me", "/api/v1") == "/me"
        assert strip_context_path("/api/v1", "/api/v1") == "/"
        assert strip_context_path("/api/v10/me", "/api/v1") == "/api/v10/me"
        assert strip_context_path("/me", "") == "/me"


class TestBearerExtraction:

    def test_bearer_token(self):
        assert extract_bearer_token({"authorization": "Bearer abc.def.ghi"}) == "abc.def.ghi"

    def test_header_name_is_case_insensitive(self):
        assert extract_bearer_token({"Authorization": "Bearer abc"}) == "abc"

    @pytest.mark.parametrize(
        "value",
        ["Basic dXNlcjpwYXNz", "bearer abc", "Bearer", "Bearer ", "Bearer    ", "abc.def.ghi"],
    )
    def test_rejected_header_values(self, value):
        assert extract_bearer_token({"authorization": value}) is None

    def test_missing_header(self):
        assert extract_bearer_token({}) is None


class TestAuthenticateRequest:

    @pytest.mark.asyncio
    async def test_public_path_skips_validation(self):
        validator = AsyncMock()

        outcome = await authenticate_request("/api/v1/refresh", {}, validator, "/api/v1")

        assert outcome.public is True
        assert outcome.allowed is True
        validator.validate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credential(self, validator):
        outcome = await authenticate_request("/me", {}, validator)

        assert outcome.allowed is False
        assert outcome.failure == AuthFailure.NO_CREDENTIAL
        assert outcome.message_key == "auth.token.missing"

    @pytest.mark.asyncio
    async def test_valid_token_yields_identity(self, validator, issue_token):
        headers = {"authorization": f"Bearer {issue_token()}"}

        outcome = await authenticate_request("/me", headers, validator)

        assert outcome.allowed is True
        assert outcome.identity == RequestIdentity(user_id="user-001", username="gm_alice", roles=("USER",))

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_accepted(self, validator, refresh_token):
        outcome = await authenticate_request("/me", {"authorization": f"Bearer {refresh_token}"}, validator)

        assert outcome.failure == AuthFailure.WRONG_TOKEN_TYPE
        assert outcome.message_key == "auth.token.invalid"

    @pytest.mark.asyncio
    async def test_expired_token(self, validator, issue_token):
        token = issue_token(ttl=timedelta(seconds=-30))

        outcome = await authenticate_request("/me", {"authorization": f"Bearer {token}"}, validator)

        assert outcome.failure == AuthFailure.EXPIRED
        assert outcome.message_key == "auth.token.invalid"

    @pytest.mark.asyncio
    async def test_rejections_share_one_message(self, validator, blacklist_store, issue_token):
        expired = issue_token(ttl=timedelta(seconds=-30))
        revoked = issue_token()
        await blacklist_store.revoke(revoked, "Logout")

        outcomes = [
            await authenticate_request("/me", {"authorization": f"Bearer {token}"}, validator)
            for token in (expired, revoked, "not.a.token")
        ]

        assert [o.failure for o in outcomes] == [
            AuthFailure.EXPIRED, AuthFailure.REVOKED, AuthFailure.MALFORMED_TOKEN,
        ]
        assert {o.message_key for o in outcomes} == {"auth.token.invalid"}

    @pytest.mark.asyncio
    async def test_rejected_token_is_masked_in_logs(self, monkeypatch, capsys, validator, issue_token):
        # Default structlog pipeline, without the redacting processor
        structlog.reset_defaults()
        monkeypatch.setattr(auth_middleware, "logger", structlog.get_logger(auth_middleware.__name__))
        token = issue_token(ttl=timedelta(seconds=-30))

        await authenticate_request("/me", {"authorization": f"Bearer {token}"}, validator)

        output = capsys.readouterr().out
        assert "Authentication failed" in output
        assert token not in output
        assert token.split(".")[1] not in output

    @pytest.mark.asyncio
    async def test_unexpected_validator_error_is_contained(self):
        validator = AsyncMock()
        validator.validate.side_effect = RuntimeError("database exploded")

        outcome = await authenticate_request("/me", {"authorization": "Bearer abc"}, validator)

        assert outcome.allowed is False
        assert outcome.failure is None
        assert outcome.message_key == VALIDATION_ERROR_KEY


class _PresetIdentityMiddleware(BaseHTTPMiddleware):
    """Simulates an upstream filter that already authenticated the caller."""

    async def dispatch(self, request, call_next):
        if request.headers.get("x-preset-identity"):
            request.state.identity = RequestIdentity(user_id="preset-1", username="preset", roles=("ADMIN",))
        return await call_next(request)


@pytest.fixture
def protected_app(validator):
    app = FastAPI()

    @app.get("/whoami")
    async def whoami(request: Request):
        identity = request.state.identity
        return {"user_id": identity.user_id, "username": identity.username}

    @app.get("/login")
    async def login():
        return {"public": True}

    app.add_middleware(
        AuthenticationMiddleware,
        validator=validator,
        message_source=MessageSource(default_locale="en"),
    )
    app.add_middleware(_PresetIdentityMiddleware)
    return app


@pytest_asyncio.fixture
async def protected_client(protected_app):
    async with AsyncClient(transport=ASGITransport(app=protected_app), base_url="http://test") as ac:
        yield ac


class TestAuthenticationMiddleware:

    @pytest.mark.asyncio
    async def test_missing_token_is_rejected(self, protected_client):
        response = await protected_client.get("/whoami")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        body = response.json()
        assert body["error"] == "Unauthorized"
        assert body["message"] == "Missing or malformed Authorization header"
        assert isinstance(body["timestamp"], int)

    @pytest.mark.asyncio
    async def test_message_is_localized(self, protected_client):
        response = await protected_client.get("/whoami", headers={"Accept-Language": "pt-BR,pt;q=0.9"})

        assert response.status_code == 401
        assert response.json()["message"] == "Cabeçalho Authorization ausente ou malformado"

    @pytest.mark.asyncio
    async def test_valid_token_reaches_handler(self, protected_client, access_token):
        response = await protected_client.get("/whoami", headers={"Authorization": f"Bearer {access_token}"})

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-001", "username": "gm_alice"}

    @pytest.mark.asyncio
    async def test_revoked_token_is_rejected(self, protected_client, blacklist_store, access_token):
        await blacklist_store.revoke(access_token, "Logout")

        response = await protected_client.get("/whoami", headers={"Authorization": f"Bearer {access_token}"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_expired_and_revoked_bodies_match(self, protected_client, blacklist_store, issue_token):
        expired = issue_token(ttl=timedelta(seconds=-30))
        revoked = issue_token()
        await blacklist_store.revoke(revoked, "Logout")

        first = await protected_client.get("/whoami", headers={"Authorization": f"Bearer {expired}"})
        second = await protected_client.get("/whoami", headers={"Authorization": f"Bearer {revoked}"})

        assert first.status_code == second.status_code == 401
        assert first.json()["message"] == second.json()["message"] == "Invalid token"
        assert first.json()["error"] == second.json()["error"]

    @pytest.mark.asyncio
    async def test_public_path_needs_no_token(self, protected_client):
        response = await protected_client.get("/login")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_existing_identity_is_kept(self, protected_client, access_token):
        response = await protected_client.get(
            "/whoami",
            headers={"X-Preset-Identity": "1", "Authorization": f"Bearer {access_token}"},
        )

        assert response.status_code == 200
        assert response.json()["user_id"] == "preset-1"
