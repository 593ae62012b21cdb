"""Token validation combining the codec and the blacklist.

The validator decides whether a token may be used for a given purpose. It
returns a ValidationResult instead of raising for ordinary rejections, so
callers branch on the outcome. Only an unreachable blacklist propagates as an
exception (``BlacklistUnavailableError``) and callers fail closed on it.
"""

from datetime import datetime, timezone
from typing import Callable

from systemrpg.core.logging import get_logger
from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
from systemrpg.infrastructure.auth.exceptions import (
    ClaimMissingError,
    InvalidSignatureError,
    MalformedTokenError,
)
from systemrpg.infrastructure.auth.token_codec import TokenCodec
from systemrpg.infrastructure.auth.token_types import (
    AuthFailure,
    TokenClaims,
    TokenType,
    ValidationResult,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenValidator:
    """Validate tokens against signature, expiry, revocation and purpose."""

    def __init__(
        self,
        codec: TokenCodec,
        blacklist: BlacklistStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            codec: Token codec used to verify and project claims.
            blacklist: Store of revoked token fingerprints.
            clock: Returns the current UTC time. Defaults to the system clock.
        """
        self._codec = codec
        self._blacklist = blacklist
        self._clock = clock or _utcnow

    @property
    def codec(self) -> TokenCodec:
        return self._codec

    async def validate(
        self,
        token: str,
        required_type: TokenType,
        expected_subject: str | None = None,
    ) -> ValidationResult:
        """Validate a token for an operation.

        Checks run in a fixed order and the first failure wins:
        signature, expiry, revocation, subject, token type, identity claims.

        Args:
            token: The raw token.
            required_type: Token type the operation accepts.
            expected_subject: Username the token must belong to. When omitted
                the token's own subject is used.

        Returns:
            ValidationResult with the verified claims, or the failure kind.

        Raises:
            BlacklistUnavailableError: If revocation status cannot be determined.
        """
        try:
            raw = self._codec.parse_claims(token)
        except InvalidSignatureError:
            return ValidationResult.rejected(AuthFailure.INVALID_SIGNATURE)
        except MalformedTokenError:
            return ValidationResult.rejected(AuthFailure.MALFORMED_TOKEN)

        try:
            expires_at = self._codec.extract_expiration(raw)
        except ClaimMissingError:
            return ValidationResult.rejected(AuthFailure.MISSING_CLAIM)
        if expires_at <= self._clock():
            return ValidationResult.rejected(AuthFailure.EXPIRED)

        if await self._blacklist.contains(self._codec.fingerprint(token)):
            return ValidationResult.rejected(AuthFailure.REVOKED)

        try:
            subject = self._codec.extract_username(raw)
        except ClaimMissingError:
            return ValidationResult.rejected(AuthFailure.MISSING_CLAIM)
        if expected_subject is None:
            expected_subject = subject
        if subject != expected_subject:
            return ValidationResult.rejected(AuthFailure.SUBJECT_MISMATCH)

        try:
            token_type = self._codec.extract_token_type(raw)
        except ClaimMissingError:
            return ValidationResult.rejected(AuthFailure.MISSING_CLAIM)
        if token_type != required_type:
            return ValidationResult.rejected(AuthFailure.WRONG_TOKEN_TYPE)

        try:
            claims = TokenClaims(
                subject=subject,
                user_id=self._codec.extract_user_id(raw),
                token_type=token_type,
                roles=self._codec.extract_roles(raw),
                issued_at=self._codec.extract_issued_at(raw),
                expires_at=expires_at,
            )
        except ClaimMissingError as e:
            logger.debug("Token is missing an identity claim", claim=e.claim)
            return ValidationResult.rejected(AuthFailure.MISSING_CLAIM)

        return ValidationResult.success(claims)
