"""Authentication infrastructure components.

This module provides token signing and parsing, the revoked-token store,
token validation and the request authentication middleware.
"""

from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
from systemrpg.infrastructure.auth.exceptions import (
    AuthError,
    AuthServiceError,
    BlacklistError,
    BlacklistUnavailableError,
    ClaimMissingError,
    DuplicateEntryError,
    InvalidSignatureError,
    InvalidTokenError,
    MalformedTokenError,
)
from systemrpg.infrastructure.auth.signing_keys import SigningKeys, load_signing_keys
from systemrpg.infrastructure.auth.token_codec import TokenCodec, fingerprint
from systemrpg.infrastructure.auth.token_types import (
    AuthFailure,
    RequestIdentity,
    Role,
    TokenClaims,
    TokenType,
    ValidationResult,
)
from systemrpg.infrastructure.auth.token_validator import TokenValidator

__all__ = [
    "AuthError",
    "AuthFailure",
    "AuthServiceError",
    "BlacklistError",
    "BlacklistStore",
    "BlacklistUnavailableError",
    "ClaimMissingError",
    "DuplicateEntryError",
    "InvalidSignatureError",
    "InvalidTokenError",
    "MalformedTokenError",
    "RequestIdentity",
    "Role",
    "SigningKeys",
    "TokenClaims",
    "TokenCodec",
    "TokenType",
    "TokenValidator",
    "ValidationResult",
    "fingerprint",
    "load_signing_keys",
]
