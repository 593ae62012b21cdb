"""Pydantic schemas for authentication endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request body for username and password sign-in."""

    username: str = Field(..., min_length=3, max_length=50, description="Username")
    password: str = Field(..., min_length=8, max_length=100, description="Password")


class RefreshRequest(BaseModel):
    """Request body for token refresh."""

    refresh_token: str = Field(..., min_length=1, description="REFRESH token to redeem")
    access_token: str | None = Field(
        None, description="Access token being replaced; blacklisted when supplied"
    )


class TokenResponse(BaseModel):
    """Response for a newly issued token pair."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field("Bearer", description="Authorization scheme")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    expires_at: datetime = Field(..., description="When the access token expires")
    refresh_expires_in: int = Field(..., description="Refresh token lifetime in seconds")


class IntrospectRequest(BaseModel):
    """Request body for token introspection."""

    token: str = Field("", description="Token to inspect, optionally prefixed with 'Bearer '")


class IntrospectResponse(BaseModel):
    """Response for token introspection."""

    active: bool = Field(..., description="Whether the token is currently usable")
    claims: dict[str, Any] | None = Field(None, description="Claims of an active token")
    error: str | None = Field(None, description="Why an inactive token is inactive")


class RevokeRequest(BaseModel):
    """Request body for administrative token revocation."""

    token: str = Field(..., min_length=1, description="ACCESS or REFRESH token to revoke")
    reason: str | None = Field(None, max_length=100, description="Reason for revocation")


class RevokeResponse(BaseModel):
    """Response for administrative token revocation."""

    revoked: bool = Field(..., description="True if the token was newly revoked")
    message: str = Field(..., description="Human-readable status message")


class MessageResponse(BaseModel):
    """Generic status message."""

    message: str = Field(..., description="Human-readable status message")


class IdentityResponse(BaseModel):
    """Identity of the authenticated caller."""

    user_id: str = Field(..., description="User identifier")
    username: str = Field(..., description="Username (token subject)")
    roles: list[str] = Field(default_factory=list, description="Role names without prefix")
