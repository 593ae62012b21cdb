"""Token types, claim models and validation outcomes.

Defines the values exchanged between the token codec, the validator and the
authentication middleware.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Claim names carried by SystemRPG tokens
CLAIM_SUBJECT = "sub"
CLAIM_USER_ID = "userId"
CLAIM_ROLES = "roles"
CLAIM_TOKEN_TYPE = "tokenType"
CLAIM_ISSUED_AT = "iat"
CLAIM_EXPIRES_AT = "exp"
CLAIM_TOKEN_ID = "jti"


class TokenType(str, Enum):
    """Purpose a token was issued for."""

    ACCESS = "ACCESS"
    REFRESH = "REFRESH"


class Role:
    """Role names as carried in the ``roles`` claim (no prefix)."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class AuthFailure(str, Enum):
    """Reasons a credential can be rejected.

    All of them surface as the same 401 at the HTTP boundary; the specific
    kind is only written to server logs.
    """

    NO_CREDENTIAL = "no_credential"
    MALFORMED_TOKEN = "malformed_token"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    SUBJECT_MISMATCH = "subject_mismatch"
    WRONG_TOKEN_TYPE = "wrong_token_type"
    MISSING_CLAIM = "missing_claim"

    @property
    def message_key(self) -> str:
        """Message key shown to a client rejected for this failure."""
        if self is AuthFailure.NO_CREDENTIAL:
            return "auth.token.missing"
        return "auth.token.invalid"


class TokenClaims(BaseModel):
    """Verified claim set of a SystemRPG token."""

    model_config = ConfigDict(frozen=True)

    subject: str = Field(..., description="Username the token was issued to")
    user_id: str = Field(..., description="Opaque unique identifier of the user")
    token_type: TokenType = Field(..., description="ACCESS or REFRESH")
    roles: list[str] = Field(default_factory=list, description="Role names without prefix")
    issued_at: Optional[datetime] = Field(None, description="When the token was issued")
    expires_at: datetime = Field(..., description="When the token stops being valid")

    def to_claims_map(self) -> dict[str, Any]:
        """Render the claims with their wire names, timestamps as epoch seconds."""
        claims: dict[str, Any] = {
            CLAIM_SUBJECT: self.subject,
            CLAIM_USER_ID: self.user_id,
            CLAIM_ROLES: list(self.roles),
            CLAIM_TOKEN_TYPE: self.token_type.value,
            CLAIM_EXPIRES_AT: int(self.expires_at.timestamp()),
        }
        if self.issued_at is not None:
            claims[CLAIM_ISSUED_AT] = int(self.issued_at.timestamp())
        return claims


@dataclass(frozen=True)
class RequestIdentity:
    """Identity attached to a request after successful authentication.

    Built only by the authentication middleware; handlers read it but never
    change it.
    """

    user_id: str
    username: str
    roles: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "RequestIdentity":
        return cls(user_id=claims.user_id, username=claims.subject, roles=tuple(claims.roles))

    def has_role(self, role: str) -> bool:
        """Check a role, accepting names with or without the ``ROLE_`` prefix."""
        return role.removeprefix("ROLE_") in self.roles

    def has_any_role(self, *roles: str) -> bool:
        return any(self.has_role(role) for role in roles)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a single token validation.

    Exactly one of ``failure`` or ``claims`` is set.
    """

    failure: Optional[AuthFailure] = None
    claims: Optional[TokenClaims] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.claims is not None

    @classmethod
    def success(cls, claims: TokenClaims) -> "ValidationResult":
        return cls(claims=claims)

    @classmethod
    def rejected(cls, failure: AuthFailure) -> "ValidationResult":
        return cls(failure=failure)
