"""Authentication exceptions.

Codec and blacklist errors are raised by the infrastructure layer; the token
validator turns codec errors into ``ValidationResult`` values, while blacklist
availability errors propagate so callers can fail closed.
"""

from systemrpg.infrastructure.auth.token_types import AuthFailure


class AuthError(Exception):
    """Base exception for authentication-related errors."""

    pass


class InvalidTokenError(AuthError):
    """Raised when a token cannot be trusted."""

    pass


class MalformedTokenError(InvalidTokenError):
    """Raised when a token cannot be parsed or verified.

    Covers bad structure, unsupported algorithms and failed signatures. All
    of them carry the same public message.
    """

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class InvalidSignatureError(MalformedTokenError):
    """Raised when a token's signature does not verify."""

    pass


class ClaimMissingError(InvalidTokenError):
    """Raised when a required claim is absent or malformed."""

    def __init__(self, claim: str) -> None:
        self.claim = claim
        super().__init__(f"Missing or malformed claim: {claim}")


class BlacklistError(AuthError):
    """Base exception for blacklist store errors."""

    pass


class DuplicateEntryError(BlacklistError):
    """Raised when a fingerprint is already blacklisted."""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__("Token fingerprint is already blacklisted")


class BlacklistUnavailableError(BlacklistError):
    """Raised when the blacklist cannot be consulted after all retries."""

    pass


class AuthServiceError(AuthError):
    """Raised when a refresh, logout or revoke request is rejected.

    Attributes:
        failure: The failure kind, logged but never shown to clients.
        message_key: Message key for the localized client message.
    """

    def __init__(self, failure: AuthFailure, message_key: str | None = None) -> None:
        self.failure = failure
        self.message_key = message_key or failure.message_key
        super().__init__(f"Authentication failed: {failure.value}")
