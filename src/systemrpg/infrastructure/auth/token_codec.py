"""Token codec for issuing and parsing SystemRPG JWTs.

Tokens are standard JWS compact tokens signed with RS256 (default) or HS256.
Parsing verifies structure, algorithm and signature but never expiry; the
token validator owns the time check so it can use an injectable clock.
"""

import hashlib
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

import jwt

from systemrpg.infrastructure.auth.exceptions import (
    ClaimMissingError,
    InvalidSignatureError,
    MalformedTokenError,
)
from systemrpg.infrastructure.auth.signing_keys import SigningKeys
from systemrpg.infrastructure.auth.token_types import (
    CLAIM_EXPIRES_AT,
    CLAIM_ISSUED_AT,
    CLAIM_ROLES,
    CLAIM_SUBJECT,
    CLAIM_TOKEN_ID,
    CLAIM_TOKEN_TYPE,
    CLAIM_USER_ID,
    TokenClaims,
    TokenType,
)

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Options for parsing: signature is always verified, expiry is checked by the validator
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_aud": False,
    "verify_iss": False,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fingerprint(token: str) -> str:
    """Derive the blacklist fingerprint of a token.

    Args:
        token: The full token string.

    Returns:
        64-character SHA-256 hex digest. The token cannot be recovered from it.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Issue and parse signed tokens with the active signing key."""

    def __init__(
        self,
        keys: SigningKeys,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the codec.

        Args:
            keys: Signing key material.
            clock: Returns the current UTC time. Defaults to the system clock.
        """
        self._keys = keys
        self._clock = clock or _utcnow

    @property
    def keys(self) -> SigningKeys:
        return self._keys

    @property
    def algorithm(self) -> str:
        return self._keys.algorithm

    def issue(
        self,
        subject: str,
        user_id: str,
        token_type: TokenType,
        roles: Iterable[str],
        ttl: timedelta,
    ) -> str:
        """Issue a signed token.

        Args:
            subject: Username the token is issued to.
            user_id: Opaque user identifier.
            token_type: ACCESS or REFRESH.
            roles: Role names without the ``ROLE_`` prefix.
            ttl: Lifetime of the token.

        Returns:
            Encoded JWT.

        Raises:
            ValueError: If the subject or user id is not acceptable.
        """
        if not subject:
            raise ValueError("subject must not be empty")
        if not USER_ID_PATTERN.match(user_id):
            raise ValueError("user_id must be 1-64 characters of [A-Za-z0-9_-]")

        now = self._clock()
        payload = {
            CLAIM_SUBJECT: subject,
            CLAIM_USER_ID: user_id,
            CLAIM_ROLES: [role.removeprefix("ROLE_") for role in roles],
            CLAIM_TOKEN_TYPE: TokenType(token_type).value,
            CLAIM_ISSUED_AT: int(now.timestamp()),
            CLAIM_EXPIRES_AT: int((now + ttl).timestamp()),
            # Unique per token so tokens issued in the same second differ
            CLAIM_TOKEN_ID: uuid.uuid4().hex,
        }
        headers = {"kid": self._keys.key_id} if self._keys.is_asymmetric else None
        return jwt.encode(
            payload,
            self._keys.signing_key,
            algorithm=self._keys.algorithm,
            headers=headers,
        )

    def parse_claims(self, token: str) -> dict[str, Any]:
        """Verify a token and return its raw claims.

        Expiry is not checked here.

        Raises:
            InvalidSignatureError: If the signature does not verify.
            MalformedTokenError: If the token cannot be parsed or uses an
                unsupported algorithm.
        """
        if not token or not isinstance(token, str):
            raise MalformedTokenError()
        try:
            claims = jwt.decode(
                token,
                self._keys.verification_key,
                algorithms=[self._keys.algorithm],
                options=_DECODE_OPTIONS,
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError() from e
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError() from e
        except (ValueError, TypeError) as e:
            # Key/algorithm mismatches surface from the crypto backend
            raise MalformedTokenError() from e
        if not isinstance(claims, dict):
            raise MalformedTokenError()
        return claims

    def verify_signature(self, token: str) -> bool:
        """Check only the cryptographic signature of a token."""
        try:
            self.parse_claims(token)
        except MalformedTokenError:
            return False
        return True

    def extract_username(self, claims: dict[str, Any]) -> str:
        subject = claims.get(CLAIM_SUBJECT)
        if not isinstance(subject, str) or not subject.strip():
            raise ClaimMissingError(CLAIM_SUBJECT)
        return subject

    def extract_user_id(self, claims: dict[str, Any]) -> str:
        user_id = claims.get(CLAIM_USER_ID)
        if not isinstance(user_id, str) or not USER_ID_PATTERN.match(user_id):
            raise ClaimMissingError(CLAIM_USER_ID)
        return user_id

    def extract_token_type(self, claims: dict[str, Any]) -> TokenType:
        try:
            return TokenType(claims.get(CLAIM_TOKEN_TYPE))
        except ValueError as e:
            raise ClaimMissingError(CLAIM_TOKEN_TYPE) from e

    def extract_roles(self, claims: dict[str, Any]) -> list[str]:
        roles = claims.get(CLAIM_ROLES)
        if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
            raise ClaimMissingError(CLAIM_ROLES)
        return list(roles)

    def extract_expiration(self, claims: dict[str, Any]) -> datetime:
        return self._extract_timestamp(claims, CLAIM_EXPIRES_AT)

    def extract_issued_at(self, claims: dict[str, Any]) -> datetime | None:
        if CLAIM_ISSUED_AT not in claims:
            return None
        return self._extract_timestamp(claims, CLAIM_ISSUED_AT)

    @staticmethod
    def _extract_timestamp(claims: dict[str, Any], name: str) -> datetime:
        value = claims.get(name)
        # bool is an int subclass but never a valid timestamp
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ClaimMissingError(name)
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ClaimMissingError(name) from e

    def to_token_claims(self, claims: dict[str, Any]) -> TokenClaims:
        """Project raw claims into a typed claim set.

        Raises:
            ClaimMissingError: If any required claim is absent or malformed.
        """
        return TokenClaims(
            subject=self.extract_username(claims),
            user_id=self.extract_user_id(claims),
            token_type=self.extract_token_type(claims),
            roles=self.extract_roles(claims),
            issued_at=self.extract_issued_at(claims),
            expires_at=self.extract_expiration(claims),
        )

    def fingerprint(self, token: str) -> str:
        return fingerprint(token)
