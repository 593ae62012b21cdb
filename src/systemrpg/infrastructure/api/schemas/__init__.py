"""Pydantic schemas for API requests and responses."""

from systemrpg.infrastructure.api.schemas.auth_schemas import (
    IdentityResponse,
    IntrospectRequest,
    IntrospectResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RevokeRequest,
    RevokeResponse,
    TokenResponse,
)
from systemrpg.infrastructure.api.schemas.error_schemas import ErrorResponse, FieldError

__all__ = [
    "ErrorResponse",
    "FieldError",
    "IdentityResponse",
    "IntrospectRequest",
    "IntrospectResponse",
    "LoginRequest",
    "MessageResponse",
    "RefreshRequest",
    "RevokeRequest",
    "RevokeResponse",
    "TokenResponse",
]
