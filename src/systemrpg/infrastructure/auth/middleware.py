"""Authentication middleware for SystemRPG.

Every request to a protected path must carry ``Authorization: Bearer <token>``
with a valid ACCESS token. On success the request state is enriched with a
RequestIdentity; on any failure the request is answered with 401 and never
reaches a handler.
"""

import time
from dataclasses import dataclass
from typing import Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from systemrpg.core.logging import get_logger, mask_token
from systemrpg.core.messages import MessageSource
from systemrpg.infrastructure.auth.token_types import (
    AuthFailure,
    RequestIdentity,
    TokenType,
)
from systemrpg.infrastructure.auth.token_validator import TokenValidator

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "

PUBLIC_PATHS = (
    "/login",
    "/logout",
    "/users/register",
    "/users/check-username",
    "/users/check-email",
    "/actuator",
    "/refresh",
    "/introspect",
    "/swagger-ui",
    "/swagger-ui.html",
    "/swagger-resources",
    "/webjars",
    "/api-docs",
    "/v3/api-docs",
    "/favicon.ico",
    "/.well-known",
    "/docs",
    "/redoc",
    "/openapi.json",
)

VALIDATION_ERROR_KEY = "auth.token.validation.error"
INVALID_TOKEN_KEY = "auth.token.invalid"


@dataclass(frozen=True)
class AuthenticationOutcome:
    """Decision taken for a single request.

    Attributes:
        public: The path is exempt from authentication.
        identity: Identity of the caller when authentication succeeded.
        failure: Failure kind when a validator outcome rejected the token.
        message_key: Message key for the 401 response on rejection.
    """

    public: bool = False
    identity: RequestIdentity | None = None
    failure: AuthFailure | None = None
    message_key: str | None = None

    @property
    def allowed(self) -> bool:
        return self.public or self.identity is not None


def strip_context_path(path: str, context_path: str) -> str:
    """Remove the application context path prefix from a request path."""
    if context_path and (path == context_path or path.startswith(f"{context_path}/")):
        return path[len(context_path):] or "/"
    return path


def is_public_path(path: str, context_path: str = "") -> bool:
    """Check a path against the public allow-list.

    A path matches an entry exactly or as a prefix ending on a segment
    boundary, so ``/refresh/x`` is public but ``/refreshments`` is not.
    """
    path = strip_context_path(path, context_path)
    for public in PUBLIC_PATHS:
        if path == public or path.startswith(f"{public}/"):
            return True
    return False


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    """Return the bearer token from an Authorization header, if any."""
    value = headers.get("authorization")
    if value is None:
        # Plain dicts are case-sensitive, starlette Headers are not
        for key, header_value in headers.items():
            if key.lower() == "authorization":
                value = header_value
                break
    if not value or not value.startswith(BEARER_PREFIX):
        return None
    token = value[len(BEARER_PREFIX):].strip()
    return token or None


async def authenticate_request(
    path: str,
    headers: Mapping[str, str],
    validator: TokenValidator,
    context_path: str = "",
) -> AuthenticationOutcome:
    """Decide whether a request may proceed.

    Args:
        path: Request path, including any context path.
        headers: Request headers.
        validator: Token validator.
        context_path: Application context path to strip before matching.

    Returns:
        AuthenticationOutcome. Never raises: unexpected errors become a
        rejection with a generic validation error message.
    """
    if is_public_path(path, context_path):
        return AuthenticationOutcome(public=True)

    token = extract_bearer_token(headers)
    if token is None:
        logger.warning(
            "Authentication failed",
            failure=AuthFailure.NO_CREDENTIAL.value,
            path=path,
        )
        return AuthenticationOutcome(
            failure=AuthFailure.NO_CREDENTIAL,
            message_key=AuthFailure.NO_CREDENTIAL.message_key,
        )

    try:
        result = await validator.validate(token, TokenType.ACCESS)
    except Exception as e:
        logger.error(
            "Unexpected error while validating token",
            error=str(e),
            error_type=type(e).__name__,
            path=path,
            token=mask_token(token),
        )
        return AuthenticationOutcome(message_key=VALIDATION_ERROR_KEY)

    if not result.ok:
        logger.warning(
            "Authentication failed",
            failure=result.failure.value if result.failure else None,
            path=path,
            token=mask_token(token),
        )
        return AuthenticationOutcome(
            failure=result.failure,
            message_key=INVALID_TOKEN_KEY,
        )

    identity = RequestIdentity.from_claims(result.claims)
    logger.debug("Request authenticated", user_id=identity.user_id, path=path)
    return AuthenticationOutcome(identity=identity)


def unauthorized_response(message: str) -> JSONResponse:
    """Build the 401 response sent for every authentication failure."""
    return JSONResponse(
        status_code=401,
        content={
            "error": "Unauthorized",
            "message": message,
            "timestamp": int(time.time() * 1000),
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware to authenticate every request to a protected path."""

    def __init__(
        self,
        app: ASGIApp,
        context_path: str = "",
        validator: TokenValidator | None = None,
        message_source: MessageSource | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
            context_path: Application context path.
            validator: Token validator. Defaults to ``app.state.token_validator``.
            message_source: Message source. Defaults to ``app.state.message_source``.
        """
        super().__init__(app)
        self.context_path = context_path
        self._validator = validator
        self._message_source = message_source

    def _get_message_source(self, request: Request) -> MessageSource:
        if self._message_source is not None:
            return self._message_source
        source = getattr(request.app.state, "message_source", None)
        return source if source is not None else MessageSource()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Authenticate the request and enrich request state.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint to call.

        Returns:
            The response from the application, or a 401 response.
        """
        # An identity established earlier in the chain is kept as is
        if getattr(request.state, "identity", None) is not None:
            return await call_next(request)

        validator = self._validator or getattr(request.app.state, "token_validator", None)
        if validator is None:
            if is_public_path(request.url.path, self.context_path):
                return await call_next(request)
            logger.error("Token validator not configured", path=request.url.path)
            outcome = AuthenticationOutcome(message_key=VALIDATION_ERROR_KEY)
        else:
            outcome = await authenticate_request(
                request.url.path,
                request.headers,
                validator,
                self.context_path,
            )

        if outcome.public:
            return await call_next(request)

        if outcome.identity is not None:
            request.state.identity = outcome.identity
            return await call_next(request)

        messages = self._get_message_source(request)
        locale = messages.resolve_locale(request.headers.get("accept-language"))
        return unauthorized_response(
            messages.get(outcome.message_key or VALIDATION_ERROR_KEY, locale)
        )
