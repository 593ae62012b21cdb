"""Application services built on the auth infrastructure."""

from systemrpg.infrastructure.services.auth_service import (
    AuthService,
    CredentialVerifier,
    IntrospectionResult,
    Principal,
    PrincipalResolver,
    TokenPair,
)
from systemrpg.infrastructure.services.blacklist_cleanup import (
    blacklist_cleanup_loop,
    start_blacklist_cleanup,
    stop_blacklist_cleanup,
)

__all__ = [
    "AuthService",
    "CredentialVerifier",
    "IntrospectionResult",
    "Principal",
    "PrincipalResolver",
    "TokenPair",
    "blacklist_cleanup_loop",
    "start_blacklist_cleanup",
    "stop_blacklist_cleanup",
]
