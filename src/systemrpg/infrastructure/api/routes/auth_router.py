"""Authentication API routes.

Provides endpoints for sign-in, token refresh, introspection, logout, administrative
revocation, the caller's identity and public key discovery.
"""

from typing import Annotated

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse

from systemrpg.core.logging import get_logger
from systemrpg.infrastructure.api.dependencies import (
    AdminIdentity,
    AuthServiceDep,
    CurrentIdentity,
    LocaleDep,
    MessagesDep,
)
from systemrpg.infrastructure.api.schemas import (
    ErrorResponse,
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
from systemrpg.infrastructure.auth.exceptions import (
    AuthServiceError,
    BlacklistUnavailableError,
)
from systemrpg.infrastructure.auth.middleware import unauthorized_response
from systemrpg.infrastructure.services.auth_service import TokenPair

router = APIRouter()
logger = get_logger(__name__)


def _error_response(
    request: Request, status_code: int, error: str, message: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            status=status_code,
            error=error,
            message=message,
            path=request.url.path,
        ).to_content(),
    )


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        expires_at=pair.expires_at,
        refresh_expires_in=pair.refresh_expires_in,
    )


@router.post(
    "/login",
    status_code=status.HTTP_200_OK,
    response_model=TokenResponse,
    responses={401: {"description": "Invalid credentials or inactive user"}},
)
async def login(
    body: LoginRequest,
    auth_service: AuthServiceDep,
    messages: MessagesDep,
    locale: LocaleDep,
) -> TokenResponse | JSONResponse:
    """Sign in with username and password and receive a token pair."""
    try:
        pair = await auth_service.login(body.username, body.password)
    except AuthServiceError as e:
        return unauthorized_response(messages.get(e.message_key, locale))

    return _token_response(pair)


@router.post(
    "/refresh",
    status_code=status.HTTP_200_OK,
    response_model=TokenResponse,
    responses={401: {"description": "Invalid, expired, revoked or wrong-type refresh token"}},
)
async def refresh_token(
    body: RefreshRequest,
    auth_service: AuthServiceDep,
    messages: MessagesDep,
    locale: LocaleDep,
) -> TokenResponse | JSONResponse:
    """Exchange a refresh token for a new token pair.

    The refresh token is single use. An access token supplied alongside it is
    invalidated as well.
    """
    try:
        pair = await auth_service.refresh(body.refresh_token, body.access_token)
    except AuthServiceError as e:
        return unauthorized_response(messages.get(e.message_key, locale))
    except BlacklistUnavailableError:
        return unauthorized_response(messages.get("auth.refresh.error", locale))

    return _token_response(pair)


@router.post(
    "/introspect",
    response_model=IntrospectResponse,
    response_model_exclude_none=True,
    responses={401: {"description": "Token is not active", "model": IntrospectResponse}},
)
async def introspect_token(
    body: IntrospectRequest,
    auth_service: AuthServiceDep,
    messages: MessagesDep,
    locale: LocaleDep,
) -> IntrospectResponse | JSONResponse:
    """Report whether a token is active and return its claims."""
    result = await auth_service.introspect(body.token)
    if result.active:
        return IntrospectResponse(active=True, claims=result.claims)

    logger.info(
        "Introspected inactive token",
        failure=result.failure.value if result.failure else None,
    )
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=IntrospectResponse(
            active=False, error=messages.get(result.error or "auth.token.invalid", locale)
        ).model_dump(exclude_none=True),
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses={
        400: {"description": "Missing Authorization header"},
        401: {"description": "Invalid access token"},
    },
)
async def logout(
    request: Request,
    auth_service: AuthServiceDep,
    messages: MessagesDep,
    locale: LocaleDep,
    authorization: Annotated[str | None, Header()] = None,
) -> MessageResponse | JSONResponse:
    """Revoke the access token presented in the Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Bad Request",
            messages.get("auth.logout.header.required", locale),
        )

    try:
        await auth_service.logout(authorization)
    except AuthServiceError as e:
        return unauthorized_response(messages.get(e.message_key, locale))
    except BlacklistUnavailableError:
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Bad Request",
            messages.get("auth.logout.error", locale),
        )

    return MessageResponse(message=messages.get("auth.logout.success", locale))


@router.post(
    "/revoke",
    response_model=RevokeResponse,
    responses={
        400: {"description": "Token cannot be verified"},
        403: {"description": "ADMIN role required"},
        503: {"description": "Blacklist unavailable"},
    },
)
async def revoke_token(
    request: Request,
    body: RevokeRequest,
    identity: AdminIdentity,
    auth_service: AuthServiceDep,
    messages: MessagesDep,
    locale: LocaleDep,
) -> RevokeResponse | JSONResponse:
    """Force-revoke any token. Requires the ADMIN role."""
    try:
        revoked = await auth_service.revoke(body.token, body.reason, actor=identity.user_id)
    except AuthServiceError as e:
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Bad Request",
            messages.get(e.message_key, locale),
        )
    except BlacklistUnavailableError:
        return _error_response(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Service Unavailable",
            messages.get("error.internal", locale),
        )

    return RevokeResponse(revoked=revoked, message=messages.get("auth.revoke.success", locale))


@router.get("/me", response_model=IdentityResponse)
async def get_me(identity: CurrentIdentity) -> IdentityResponse:
    """Return the identity of the authenticated caller."""
    return IdentityResponse(
        user_id=identity.user_id,
        username=identity.username,
        roles=list(identity.roles),
    )


@router.get("/.well-known/jwks.json", tags=["discovery"])
async def jwks(auth_service: AuthServiceDep) -> dict:
    """Public signing keys as a JWK set. Empty when tokens use HS256."""
    return auth_service.jwks()
