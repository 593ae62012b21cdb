"""Token lifecycle operations behind the auth endpoints.

Signs users in, rotates token pairs on refresh, revokes tokens on logout or
by an administrator, and answers introspection queries. Every decision about
a presented token goes through the TokenValidator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Protocol, runtime_checkable

from systemrpg.core.config import Settings, get_settings
from systemrpg.core.logging import get_logger, mask_token
from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
from systemrpg.infrastructure.auth.exceptions import (
    AuthError,
    AuthServiceError,
    BlacklistUnavailableError,
    ClaimMissingError,
    DuplicateEntryError,
    InvalidSignatureError,
    MalformedTokenError,
)
from systemrpg.infrastructure.auth.token_codec import TokenCodec
from systemrpg.infrastructure.auth.token_types import (
    AuthFailure,
    TokenClaims,
    TokenType,
)
from systemrpg.infrastructure.auth.token_validator import TokenValidator

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "

REASON_LOGOUT = "Logout"
REASON_REFRESH_ROTATED = "Refresh token rotated"
REASON_ACCESS_REPLACED = "Access token invalidated during refresh"
REASON_ADMIN_REVOKE = "Revoked by administrator"

_INTROSPECTION_ERRORS = {
    AuthFailure.REVOKED: "auth.token.revoked",
    AuthFailure.EXPIRED: "auth.token.expired",
    AuthFailure.INVALID_SIGNATURE: "auth.token.invalid",
    AuthFailure.MALFORMED_TOKEN: "auth.token.invalid",
}


@dataclass(frozen=True)
class Principal:
    """Current state of a user as known to the user directory."""

    username: str
    user_id: str
    roles: tuple[str, ...] = field(default_factory=tuple)
    active: bool = True


@runtime_checkable
class PrincipalResolver(Protocol):
    """Look up the current state of a user when a refresh token is redeemed."""

    async def resolve(self, username: str, user_id: str) -> Principal | None:
        """Return the user's current principal, or None if it no longer exists."""
        ...


@runtime_checkable
class CredentialVerifier(Protocol):
    """Check a username and password against the user directory."""

    async def verify(self, username: str, password: str) -> Principal | None:
        """Return the principal for valid credentials, or None."""
        ...


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh tokens issued together."""

    access_token: str
    refresh_token: str
    expires_in: int
    expires_at: datetime
    refresh_expires_in: int
    token_type: str = "Bearer"


@dataclass(frozen=True)
class IntrospectionResult:
    """Answer to an introspection query.

    Attributes:
        active: Whether the token is currently usable.
        claims: Claim map of an active token.
        error: Message key explaining why an inactive token is inactive.
        failure: Failure kind, for logging only.
    """

    active: bool
    claims: dict[str, Any] | None = None
    error: str | None = None
    failure: AuthFailure | None = None

    @classmethod
    def inactive(cls, error: str, failure: AuthFailure | None = None) -> "IntrospectionResult":
        return cls(active=False, error=error, failure=failure)


def strip_bearer(value: str | None) -> str:
    """Remove a leading ``Bearer `` prefix and surrounding whitespace."""
    if not value:
        return ""
    value = value.lstrip()
    if value.startswith(BEARER_PREFIX):
        value = value[len(BEARER_PREFIX):]
    return value.strip()


class AuthService:
    """Service for issuing, rotating, revoking and inspecting tokens."""

    def __init__(
        self,
        codec: TokenCodec,
        validator: TokenValidator,
        blacklist: BlacklistStore,
        principal_resolver: PrincipalResolver | None = None,
        settings: Settings | None = None,
        credential_verifier: CredentialVerifier | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._credential_verifier = credential_verifier
        self._codec = codec
        self._validator = validator
        self._blacklist = blacklist
        self._principal_resolver = principal_resolver
        self._access_ttl = timedelta(seconds=settings.access_token_expire_seconds)
        self._refresh_ttl = timedelta(seconds=settings.refresh_token_expire_seconds)

    def issue_token_pair(self, subject: str, user_id: str, roles: Iterable[str]) -> TokenPair:
        """Issue a new access and refresh token for a user.

        Args:
            subject: Username.
            user_id: Opaque user identifier.
            roles: Role names without prefix.

        Returns:
            The issued TokenPair.
        """
        roles = list(roles)
        access_token = self._codec.issue(subject, user_id, TokenType.ACCESS, roles, self._access_ttl)
        refresh_token = self._codec.issue(
            subject, user_id, TokenType.REFRESH, roles, self._refresh_ttl
        )
        expires_in = int(self._access_ttl.total_seconds())
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expires_at=datetime.now(timezone.utc) + self._access_ttl,
            refresh_expires_in=int(self._refresh_ttl.total_seconds()),
        )

    async def login(self, username: str, password: str) -> TokenPair:
        """Verify credentials and issue a token pair.

        Args:
            username: Username to sign in.
            password: Plain-text password, never logged.

        Returns:
            The issued TokenPair.

        Raises:
            AuthServiceError: If the credentials are rejected or the user is
                inactive.
        """
        if self._credential_verifier is None:
            logger.warning("Login attempted without a credential verifier", username=username)
            raise AuthServiceError(AuthFailure.NO_CREDENTIAL, "auth.credentials.invalid")

        principal = await self._credential_verifier.verify(username, password)
        if principal is None:
            logger.warning("Login failed", username=username)
            raise AuthServiceError(AuthFailure.NO_CREDENTIAL, "auth.credentials.invalid")
        if not principal.active:
            logger.warning("Login attempt by inactive user", user_id=principal.user_id)
            raise AuthServiceError(AuthFailure.REVOKED, "auth.user.inactive")

        pair = self.issue_token_pair(principal.username, principal.user_id, principal.roles)
        logger.info("User logged in", user_id=principal.user_id)
        return pair

    async def refresh(self, refresh_token: str, access_token: str | None = None) -> TokenPair:
        """Exchange a refresh token for a new token pair.

        The refresh token is consumed: it is blacklisted before the new pair
        is issued, so a second redemption fails. A previous access token, when
        supplied, is blacklisted on a best-effort basis.

        Args:
            refresh_token: The REFRESH token to redeem.
            access_token: Optional access token being replaced.

        Returns:
            The new TokenPair.

        Raises:
            AuthServiceError: If the refresh token is not acceptable or the
                user may no longer sign in.
            BlacklistUnavailableError: If revocation state cannot be checked.
        """
        refresh_token = strip_bearer(refresh_token)
        if not refresh_token:
            raise AuthServiceError(AuthFailure.NO_CREDENTIAL, "auth.refresh.token.invalid")

        result = await self._validator.validate(refresh_token, TokenType.REFRESH)
        if not result.ok:
            logger.warning(
                "Refresh rejected",
                failure=result.failure.value if result.failure else None,
                refresh_token=mask_token(refresh_token),
            )
            raise AuthServiceError(
                result.failure or AuthFailure.MALFORMED_TOKEN, "auth.refresh.token.invalid"
            )
        claims = result.claims

        principal = await self._resolve_principal(claims)

        try:
            await self._blacklist.add(
                self._codec.fingerprint(refresh_token),
                claims.expires_at,
                reason=REASON_REFRESH_ROTATED,
                user_id=claims.user_id,
            )
        except DuplicateEntryError as e:
            # Another request redeemed the same token first
            logger.warning("Refresh token reused", user_id=claims.user_id)
            raise AuthServiceError(AuthFailure.REVOKED, "auth.refresh.token.invalid") from e

        if access_token:
            await self._invalidate_replaced_access_token(strip_bearer(access_token), claims)

        pair = self.issue_token_pair(principal.username, principal.user_id, principal.roles)
        logger.info("Token pair refreshed", user_id=principal.user_id)
        return pair

    async def _resolve_principal(self, claims: TokenClaims) -> Principal:
        if self._principal_resolver is None:
            return Principal(
                username=claims.subject,
                user_id=claims.user_id,
                roles=tuple(claims.roles),
            )

        principal = await self._principal_resolver.resolve(claims.subject, claims.user_id)
        if principal is None:
            logger.warning("Refresh for unknown user", user_id=claims.user_id)
            raise AuthServiceError(AuthFailure.SUBJECT_MISMATCH, "auth.refresh.token.invalid")
        if principal.user_id != claims.user_id:
            logger.warning(
                "Refresh token user does not match directory",
                user_id=claims.user_id,
                resolved_user_id=principal.user_id,
            )
            raise AuthServiceError(AuthFailure.SUBJECT_MISMATCH, "auth.refresh.token.invalid")
        if not principal.active:
            logger.warning("Refresh for inactive user", user_id=claims.user_id)
            raise AuthServiceError(AuthFailure.REVOKED, "auth.user.inactive")
        return principal

    async def _invalidate_replaced_access_token(
        self, access_token: str, refresh_claims: TokenClaims
    ) -> None:
        """Blacklist the access token a refresh replaces, ignoring failures."""
        try:
            raw = self._codec.parse_claims(access_token)
            if self._codec.extract_username(raw) != refresh_claims.subject:
                logger.warning(
                    "Replaced access token belongs to another user",
                    user_id=refresh_claims.user_id,
                )
                return
            await self._blacklist.revoke(
                access_token, REASON_ACCESS_REPLACED, refresh_claims.user_id
            )
        except AuthError as e:
            logger.warning(
                "Could not invalidate replaced access token",
                error=type(e).__name__,
                access_token=mask_token(access_token),
            )

    async def logout(self, access_token: str) -> TokenClaims:
        """Revoke the access token presented on logout.

        Args:
            access_token: The ACCESS token, with or without ``Bearer `` prefix.

        Returns:
            Claims of the revoked token.

        Raises:
            AuthServiceError: If the token is not a valid access token.
            BlacklistUnavailableError: If the blacklist cannot be used.
        """
        access_token = strip_bearer(access_token)
        if not access_token:
            raise AuthServiceError(AuthFailure.NO_CREDENTIAL, "auth.logout.header.required")

        result = await self._validator.validate(access_token, TokenType.ACCESS)
        if not result.ok:
            logger.warning(
                "Logout rejected",
                failure=result.failure.value if result.failure else None,
                access_token=mask_token(access_token),
            )
            raise AuthServiceError(result.failure or AuthFailure.MALFORMED_TOKEN, "auth.token.invalid")

        await self._blacklist.revoke(access_token, REASON_LOGOUT, result.claims.user_id)
        logger.info("User logged out", user_id=result.claims.user_id)
        return result.claims

    async def revoke(self, token: str, reason: str | None = None, actor: str | None = None) -> bool:
        """Force-revoke any token with a verifiable signature.

        Args:
            token: ACCESS or REFRESH token.
            reason: Optional reason stored with the entry.
            actor: User id of the administrator, for logging.

        Returns:
            True if newly revoked, False if it was already revoked.

        Raises:
            AuthServiceError: If the token cannot be verified.
            BlacklistUnavailableError: If the blacklist cannot be written.
        """
        token = strip_bearer(token)
        try:
            revoked = await self._blacklist.revoke(token, reason or REASON_ADMIN_REVOKE)
        except InvalidSignatureError as e:
            raise AuthServiceError(AuthFailure.INVALID_SIGNATURE) from e
        except MalformedTokenError as e:
            raise AuthServiceError(AuthFailure.MALFORMED_TOKEN) from e
        except ClaimMissingError as e:
            raise AuthServiceError(AuthFailure.MISSING_CLAIM) from e

        logger.info("Token revoked by administrator", actor=actor, newly_revoked=revoked)
        return revoked

    async def introspect(self, token: str | None) -> IntrospectionResult:
        """Report whether a token is active and, if so, its claims.

        Never raises: every problem is reported as an inactive token.
        """
        token = strip_bearer(token)
        if not token:
            return IntrospectionResult.inactive("auth.token.empty", AuthFailure.NO_CREDENTIAL)

        try:
            raw = self._codec.parse_claims(token)
            token_type = self._codec.extract_token_type(raw)
        except InvalidSignatureError:
            return IntrospectionResult.inactive("auth.token.invalid", AuthFailure.INVALID_SIGNATURE)
        except MalformedTokenError:
            return IntrospectionResult.inactive("auth.token.invalid", AuthFailure.MALFORMED_TOKEN)
        except ClaimMissingError:
            return IntrospectionResult.inactive("auth.token.invalid", AuthFailure.MISSING_CLAIM)

        try:
            result = await self._validator.validate(token, token_type)
        except BlacklistUnavailableError:
            logger.error("Introspection could not consult the blacklist", token=mask_token(token))
            return IntrospectionResult.inactive("auth.introspect.error")

        if not result.ok:
            failure = result.failure or AuthFailure.MALFORMED_TOKEN
            return IntrospectionResult.inactive(
                _INTROSPECTION_ERRORS.get(failure, "auth.token.invalid"), failure
            )

        return IntrospectionResult(active=True, claims=result.claims.to_claims_map())

    def jwks(self) -> dict[str, list[dict[str, str]]]:
        """Public key set for signature verification by other services."""
        return self._codec.keys.jwk_set()
