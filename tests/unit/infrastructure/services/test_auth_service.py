"""Tests for AuthService token lifecycle operations."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import structlog
from structlog.testing import capture_logs

from systemrpg.core.logging import mask_token
from systemrpg.infrastructure.auth.exceptions import (
    AuthServiceError,
    BlacklistUnavailableError,
)
from systemrpg.infrastructure.auth.token_codec import fingerprint
from systemrpg.infrastructure.auth.token_types import AuthFailure, Role, TokenType
from systemrpg.infrastructure.services import auth_service as auth_service_module
from systemrpg.infrastructure.services.auth_service import (
    AuthService,
    Principal,
    CredentialVerifier,
    PrincipalResolver,
    strip_bearer,
)


class StaticResolver:
    """PrincipalResolver returning a fixed principal."""

    def __init__(self, principal: Principal | None) -> None:
        self.principal = principal
        self.calls: list[tuple[str, str]] = []

    async def resolve(self, username: str, user_id: str) -> Principal | None:
        self.calls.append((username, user_id))
        return self.principal


class PasswordVerifier:
    """CredentialVerifier accepting one password for a fixed principal."""

    def __init__(self, principal: Principal, password: str) -> None:
        self.principal = principal
        self.password = password

    async def verify(self, username: str, password: str) -> Principal | None:
        if username == self.principal.username and password == self.password:
            return self.principal
        return None


@pytest.fixture
def service_with_resolver(codec, validator, blacklist_store, settings):
    def _build(principal: Principal | None) -> tuple[AuthService, StaticResolver]:
        resolver = StaticResolver(principal)
        service = AuthService(codec, validator, blacklist_store, resolver, settings)
        return service, resolver

    return _build


@pytest.mark.parametrize(
    "value,expected",
    [(None, ""), ("", ""), ("Bearer abc", "abc"), ("  Bearer abc  ", "abc"), ("abc", "abc"), ("Bearer ", "")],
)
def test_strip_bearer(value, expected):
    assert strip_bearer(value) == expected


def test_static_resolver_satisfies_protocol():
    assert isinstance(StaticResolver(None), PrincipalResolver)


class TestIssueTokenPair:

    def test_issues_access_and_refresh(self, auth_service, codec, settings):
        pair = auth_service.issue_token_pair("gm_alice", "user-001", [Role.USER])

        access = codec.parse_claims(pair.access_token)
        refresh = codec.parse_claims(pair.refresh_token)

        assert access["tokenType"] == "ACCESS"
        assert refresh["tokenType"] == "REFRESH"
        assert access["exp"] - access["iat"] == settings.access_token_expire_seconds
        assert refresh["exp"] - refresh["iat"] == settings.refresh_token_expire_seconds
        assert pair.expires_in == settings.access_token_expire_seconds
        assert pair.refresh_expires_in == settings.refresh_token_expire_seconds
        assert pair.token_type == "Bearer"


class TestLogin:

    @pytest.fixture
    def build_service(self, codec, validator, blacklist_store, settings):
        def _build(active: bool = True) -> AuthService:
            principal = Principal("gm_alice", "user-001", (Role.USER,), active=active)
            verifier = PasswordVerifier(principal, "correct-horse")
            return AuthService(codec, validator, blacklist_store, settings=settings, credential_verifier=verifier)

        return _build

    def test_password_verifier_satisfies_protocol(self):
        assert isinstance(PasswordVerifier(Principal("a", "b"), "pw"), CredentialVerifier)

    @pytest.mark.asyncio
    async def test_login_issues_pair(self, build_service, codec):
        pair = await build_service().login("gm_alice", "correct-horse")

        access = codec.parse_claims(pair.access_token)
        assert access["sub"] == "gm_alice"
        assert access["userId"] == "user-001"
        assert access["roles"] == ["USER"]
        assert codec.parse_claims(pair.refresh_token)["tokenType"] == "REFRESH"

    @pytest.mark.asyncio
    async def test_wrong_password(self, build_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await build_service().login("gm_alice", "wrong-password")
        assert exc_info.value.message_key == "auth.credentials.invalid"

    @pytest.mark.asyncio
    async def test_inactive_user(self, build_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await build_service(active=False).login("gm_alice", "correct-horse")
        assert exc_info.value.message_key == "auth.user.inactive"

    @pytest.mark.asyncio
    async def test_without_verifier_every_login_fails(self, auth_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.login("gm_alice", "correct-horse")
        assert exc_info.value.message_key == "auth.credentials.invalid"

    @pytest.mark.asyncio
    async def test_password_is_not_logged(self, monkeypatch, build_service):
        monkeypatch.setattr(auth_service_module, "logger", structlog.get_logger(auth_service_module.__name__))

        with capture_logs() as logs, pytest.raises(AuthServiceError):
            await build_service().login("gm_alice", "wrong-password")

        assert [log["event"] for log in logs] == ["Login failed"]
        assert "wrong-password" not in repr(logs)


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, auth_service, codec, refresh_token):
        pair = await auth_service.refresh(refresh_token)

        claims = codec.parse_claims(pair.access_token)
        assert claims["sub"] == "gm_alice"
        assert claims["userId"] == "user-001"
        assert claims["roles"] == ["USER"]
        assert pair.refresh_token != refresh_token

    @pytest.mark.asyncio
    async def test_refresh_token_is_single_use(self, auth_service, blacklist_store, refresh_token):
        await auth_service.refresh(refresh_token)

        assert await blacklist_store.contains(fingerprint(refresh_token)) is True
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.refresh(refresh_token)
        assert exc_info.value.failure == AuthFailure.REVOKED
        assert exc_info.value.message_key == "auth.refresh.token.invalid"

    @pytest.mark.asyncio
    async def test_lost_rotation_race_is_rejected(self, auth_service, blacklist_store, codec, refresh_token):
        # Another request blacklists the token between validation and rotation
        original_contains = blacklist_store.contains

        async def contains_then_redeem(token_hash):
            found = await original_contains(token_hash)
            await blacklist_store.revoke(refresh_token)
            return found

        with patch.object(blacklist_store, "contains", side_effect=contains_then_redeem):
            with pytest.raises(AuthServiceError) as exc_info:
                await auth_service.refresh(refresh_token)

        assert exc_info.value.failure == AuthFailure.REVOKED

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, auth_service, access_token):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.refresh(access_token)
        assert exc_info.value.failure == AuthFailure.WRONG_TOKEN_TYPE

    @pytest.mark.asyncio
    async def test_expired_refresh_token(self, auth_service, issue_token):
        token = issue_token(token_type=TokenType.REFRESH, ttl=timedelta(seconds=-5))

        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.refresh(token)

        assert exc_info.value.failure == AuthFailure.EXPIRED

    @pytest.mark.asyncio
    async def test_empty_refresh_token(self, auth_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.refresh("   ")
        assert exc_info.value.failure == AuthFailure.NO_CREDENTIAL

    @pytest.mark.asyncio
    async def test_previous_access_token_is_revoked(self, auth_service, blacklist_store, refresh_token, access_token):
        await auth_service.refresh(refresh_token, f"Bearer {access_token}")

        assert await blacklist_store.contains(fingerprint(access_token)) is True

    @pytest.mark.asyncio
    async def test_foreign_access_token_is_left_alone(self, auth_service, blacklist_store, refresh_token, issue_token):
        foreign = issue_token(subject="player_carol", user_id="user-002")

        await auth_service.refresh(refresh_token, foreign)

        assert await blacklist_store.contains(fingerprint(foreign)) is False

    @pytest.mark.asyncio
    async def test_garbage_access_token_does_not_block_refresh(self, auth_service, refresh_token):
        pair = await auth_service.refresh(refresh_token, "not-a-token")
        assert pair.access_token

    @pytest.mark.asyncio
    async def test_resolver_supplies_current_roles(self, service_with_resolver, codec, refresh_token):
        service, resolver = service_with_resolver(
            Principal(username="gm_alice", user_id="user-001", roles=(Role.MANAGER,))
        )

        pair = await service.refresh(refresh_token)

        assert resolver.calls == [("gm_alice", "user-001")]
        assert codec.parse_claims(pair.access_token)["roles"] == ["MANAGER"]

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_refresh(self, service_with_resolver, blacklist_store, refresh_token):
        service, _ = service_with_resolver(
            Principal(username="gm_alice", user_id="user-001", active=False)
        )

        with pytest.raises(AuthServiceError) as exc_info:
            await service.refresh(refresh_token)

        assert exc_info.value.message_key == "auth.user.inactive"
        assert await blacklist_store.contains(fingerprint(refresh_token)) is False

    @pytest.mark.asyncio
    async def test_unknown_user_cannot_refresh(self, service_with_resolver, refresh_token):
        service, _ = service_with_resolver(None)

        with pytest.raises(AuthServiceError) as exc_info:
            await service.refresh(refresh_token)

        assert exc_info.value.failure == AuthFailure.SUBJECT_MISMATCH

    @pytest.mark.asyncio
    async def test_user_id_mismatch_is_rejected(self, service_with_resolver, refresh_token):
        service, _ = service_with_resolver(Principal(username="gm_alice", user_id="user-999"))

        with pytest.raises(AuthServiceError) as exc_info:
            await service.refresh(refresh_token)

        assert exc_info.value.failure == AuthFailure.SUBJECT_MISMATCH


class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_revokes_access_token(self, auth_service, blacklist_store, access_token):
        claims = await auth_service.logout(f"Bearer {access_token}")

        assert claims.user_id == "user-001"
        assert await blacklist_store.contains(fingerprint(access_token)) is True

    @pytest.mark.asyncio
    async def test_second_logout_is_rejected(self, auth_service, access_token):
        await auth_service.logout(access_token)

        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.logout(access_token)

        assert exc_info.value.failure == AuthFailure.REVOKED
        assert exc_info.value.message_key == "auth.token.invalid"

    @pytest.mark.asyncio
    async def test_rejected_logout_logs_masked_token(self, monkeypatch, auth_service, issue_token):
        token = issue_token(ttl=timedelta(seconds=-5))
        monkeypatch.setattr(auth_service_module, "logger", structlog.get_logger(auth_service_module.__name__))

        with capture_logs() as logs, pytest.raises(AuthServiceError):
            await auth_service.logout(token)

        entry = next(log for log in logs if log["event"] == "Logout rejected")
        assert entry["failure"] == "expired"
        assert entry["access_token"] == mask_token(token)
        assert token not in repr(logs)

    @pytest.mark.asyncio
    async def test_logout_requires_token(self, auth_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.logout("")
        assert exc_info.value.message_key == "auth.logout.header.required"

    @pytest.mark.asyncio
    async def test_logout_with_refresh_token(self, auth_service, refresh_token):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.logout(refresh_token)
        assert exc_info.value.failure == AuthFailure.WRONG_TOKEN_TYPE


class TestRevoke:

    @pytest.mark.asyncio
    async def test_revoke_any_token_type(self, auth_service, blacklist_store, access_token, refresh_token):
        assert await auth_service.revoke(access_token, actor="admin-001") is True
        assert await auth_service.revoke(refresh_token, reason="Compromised") is True
        assert await blacklist_store.count() == 2

    @pytest.mark.asyncio
    async def test_revoke_twice_reports_existing(self, auth_service, access_token):
        assert await auth_service.revoke(access_token) is True
        assert await auth_service.revoke(access_token) is False

    @pytest.mark.asyncio
    async def test_revoke_expired_token_still_records_it(self, auth_service, issue_token):
        token = issue_token(ttl=timedelta(seconds=-5))
        assert await auth_service.revoke(token) is True

    @pytest.mark.asyncio
    async def test_revoke_rejects_garbage(self, auth_service):
        with pytest.raises(AuthServiceError) as exc_info:
            await auth_service.revoke("garbage")
        assert exc_info.value.failure == AuthFailure.MALFORMED_TOKEN


class TestIntrospect:

    @pytest.mark.asyncio
    async def test_active_access_token(self, auth_service, access_token):
        result = await auth_service.introspect(access_token)

        assert result.active is True
        assert result.error is None
        assert result.claims["sub"] == "gm_alice"
        assert result.claims["tokenType"] == "ACCESS"

    @pytest.mark.asyncio
    async def test_active_refresh_token_with_bearer_prefix(self, auth_service, refresh_token):
        result = await auth_service.introspect(f"Bearer {refresh_token}")

        assert result.active is True
        assert result.claims["tokenType"] == "REFRESH"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [None, "", "   ", "Bearer "])
    async def test_empty_token(self, auth_service, value):
        result = await auth_service.introspect(value)

        assert result.active is False
        assert result.error == "auth.token.empty"

    @pytest.mark.asyncio
    async def test_revoked_token(self, auth_service, blacklist_store, access_token):
        await blacklist_store.revoke(access_token)

        result = await auth_service.introspect(access_token)

        assert result.active is False
        assert result.error == "auth.token.revoked"
        assert result.claims is None

    @pytest.mark.asyncio
    async def test_expired_token(self, auth_service, issue_token):
        result = await auth_service.introspect(issue_token(ttl=timedelta(seconds=-5)))
        assert result.error == "auth.token.expired"

    @pytest.mark.asyncio
    async def test_invalid_token(self, auth_service):
        result = await auth_service.introspect("garbage")
        assert result.active is False
        assert result.error == "auth.token.invalid"

    @pytest.mark.asyncio
    async def test_blacklist_outage_is_reported_inactive(self, auth_service, blacklist_store, access_token):
        with patch.object(
            blacklist_store, "contains", AsyncMock(side_effect=BlacklistUnavailableError("down"))
        ):
            result = await auth_service.introspect(access_token)

        assert result.active is False
        assert result.error == "auth.introspect.error"


def test_jwks_is_empty_for_hmac(auth_service):
    assert auth_service.jwks() == {"keys": []}
