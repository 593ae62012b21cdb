"""FastAPI application factory and configuration.

This module provides the application factory function for creating
and configuring the FastAPI application with all middleware, routes,
and lifecycle handlers.
"""

import uuid
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from systemrpg.core.config import Settings, get_settings
from systemrpg.core.logging import (
    bind_correlation_id,
    clear_context,
    configure_logging,
    get_logger,
)
from systemrpg.core.messages import MessageSource
from systemrpg.infrastructure.api.schemas import ErrorResponse, FieldError
from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
from systemrpg.infrastructure.auth.middleware import AuthenticationMiddleware
from systemrpg.infrastructure.auth.signing_keys import load_signing_keys
from systemrpg.infrastructure.auth.token_codec import TokenCodec
from systemrpg.infrastructure.auth.token_validator import TokenValidator
from systemrpg.infrastructure.persistence.database import (
    DatabaseManager,
    close_database,
    get_db_manager,
    init_database,
)
from systemrpg.infrastructure.services.auth_service import (
    AuthService,
    CredentialVerifier,
    PrincipalResolver,
)
from systemrpg.infrastructure.services.blacklist_cleanup import (
    start_blacklist_cleanup,
    stop_blacklist_cleanup,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control is yielded to the application during its lifetime.
    """
    settings: Settings = app.state.settings
    db: DatabaseManager = app.state.db_manager

    # Startup
    configure_logging(settings)
    logger.info(
        "Starting SystemRPG",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        jwt_algorithm=settings.jwt_algorithm,
    )

    try:
        await init_database(db)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    cleanup_task = None
    if settings.blacklist_prune_enabled:
        cleanup_task = start_blacklist_cleanup(
            app.state.blacklist_store, settings.blacklist_prune_interval_seconds
        )

    yield

    # Shutdown
    logger.info("Shutting down SystemRPG")
    await stop_blacklist_cleanup(cleanup_task)
    await close_database(db)
    logger.info("Database connection closed")


def create_app(
    settings: Settings | None = None,
    db_manager: DatabaseManager | None = None,
    principal_resolver: PrincipalResolver | None = None,
    credential_verifier: CredentialVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. Defaults to the cached settings.
        db_manager: Optional database manager. Defaults to the global one.
        principal_resolver: Optional user lookup consulted on refresh.
        credential_verifier: Optional password check used by /login.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    db_manager = db_manager or get_db_manager()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Authentication and authorization core for the SystemRPG backend",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # Services are built once and shared through app state
    codec = TokenCodec(load_signing_keys(settings))
    blacklist_store = BlacklistStore(db_manager.session_factory, codec, settings)
    validator = TokenValidator(codec, blacklist_store)

    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.message_source = MessageSource(settings.default_locale)
    app.state.token_codec = codec
    app.state.blacklist_store = blacklist_store
    app.state.token_validator = validator
    app.state.auth_service = AuthService(
        codec,
        validator,
        blacklist_store,
        principal_resolver,
        settings,
        credential_verifier=credential_verifier,
    )

    logger.info("Auth services initialized", jwt_algorithm=codec.algorithm)

    # Authentication runs inside CORS so preflight requests are answered first
    app.add_middleware(AuthenticationMiddleware, context_path=settings.context_path)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Register health check endpoint
    register_health_check(app, settings)

    # Register API routes
    register_routes(app, settings)

    # Register exception handlers
    register_exception_handlers(app, settings)

    # Register middleware
    register_middleware(app)

    return app


def register_health_check(app: FastAPI, settings: Settings) -> None:
    """Register health check endpoints.

    Args:
        app: FastAPI application instance.
        settings: Application settings.
    """

    @app.get(f"{settings.context_path}/actuator/health", tags=["health"])
    async def health_check(request: Request):
        """Liveness and database status.

        Returns 200 when the database answers, 503 otherwise.
        """
        db: DatabaseManager = request.app.state.db_manager
        db_healthy = await db.check_connection()
        content = {
            "status": "UP" if db_healthy else "DOWN",
            "service": settings.app_name,
            "version": settings.app_version,
            "components": {"database": {"status": "UP" if db_healthy else "DOWN"}},
        }
        if db_healthy:
            return content
        return JSONResponse(status_code=503, content=content)


def register_routes(app: FastAPI, settings: Settings) -> None:
    """Register API routes.

    Args:
        app: FastAPI application instance.
        settings: Application settings.
    """
    from systemrpg.infrastructure.api.routes import auth_router

    app.include_router(auth_router, prefix=settings.context_path, tags=["auth"])


def _reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register global exception handlers.

    All of them answer with the ErrorResponse envelope. ``HTTPException``
    details are treated as message keys and localized.

    Args:
        app: FastAPI application instance.
        settings: Application settings.
    """

    def _messages(request: Request) -> tuple[MessageSource, str]:
        messages: MessageSource = request.app.state.message_source
        return messages, messages.resolve_locale(request.headers.get("accept-language"))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render HTTP errors raised by routes and dependencies."""
        messages, locale = _messages(request)
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = messages.get("error.not_found", locale)
        else:
            message = messages.get(str(exc.detail), locale)
        body = ErrorResponse(
            type="auth" if exc.status_code in (401, 403) else None,
            status=exc.status_code,
            error=_reason_phrase(exc.status_code),
            message=message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.to_content(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Render request validation failures with per-field errors."""
        messages, locale = _messages(request)
        field_errors = [
            FieldError(
                field=".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                error=error.get("msg", ""),
            )
            for error in exc.errors()
        ]
        body = ErrorResponse(
            type="validation",
            status=422,
            error=_reason_phrase(422),
            message=messages.get("error.validation", locale),
            field_errors=field_errors,
            path=request.url.path,
        )
        return JSONResponse(status_code=422, content=body.to_content())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        messages, locale = _messages(request)
        body = ErrorResponse(
            type="internal",
            status=500,
            error=_reason_phrase(500),
            message=messages.get("error.internal", locale),
            detail=str(exc) if settings.debug else None,
            path=request.url.path,
        )
        return JSONResponse(status_code=500, content=body.to_content())


def register_middleware(app: FastAPI) -> None:
    """Register custom middleware.

    Args:
        app: FastAPI application instance.
    """

    @app.middleware("http")
    async def logging_middleware(request, call_next):
        """Middleware to log all requests and add correlation ID."""
        # Generate or extract correlation ID
        correlation_id = request.headers.get("X-Correlation-ID", f"cid_{uuid.uuid4().hex[:12]}")
        bind_correlation_id(correlation_id)

        logger.info(
            "Request started",
            method=request.method,
            path=str(request.url.path),
            correlation_id=correlation_id,
        )

        try:
            response = await call_next(request)
            logger.info(
                "Request completed",
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                correlation_id=correlation_id,
            )
            response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            # Clear context to prevent leakage
            clear_context()


# Create the application instance
app = create_app()
