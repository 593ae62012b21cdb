"""FastAPI dependencies for authentication and authorization.

The authentication middleware attaches a RequestIdentity to the request
state; handlers receive it through these dependencies rather than reading
request state directly.
"""

from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, status

from systemrpg.core.logging import get_logger
from systemrpg.core.messages import MessageSource
from systemrpg.infrastructure.auth.token_types import RequestIdentity, Role
from systemrpg.infrastructure.services.auth_service import AuthService

logger = get_logger(__name__)


def get_request_identity(request: Request) -> RequestIdentity:
    """Return the identity established by the authentication middleware.

    Raises:
        HTTPException: 401 if the request carries no identity.
    """
    identity = getattr(request.state, "identity", None)
    if not isinstance(identity, RequestIdentity):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="auth.unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


# Type alias for dependency injection
CurrentIdentity = Annotated[RequestIdentity, Depends(get_request_identity)]


def require_roles(*roles: str) -> Callable[[RequestIdentity], RequestIdentity]:
    """Build a dependency that admits callers holding any of ``roles``.

    Role names may be given with or without the ``ROLE_`` prefix.

    Example:
        @router.post("/revoke")
        async def revoke(identity: Annotated[RequestIdentity, Depends(require_roles(Role.ADMIN))]):
            ...
    """

    def _check_roles(identity: CurrentIdentity) -> RequestIdentity:
        if not identity.has_any_role(*roles):
            logger.info(
                "Role check denied",
                user_id=identity.user_id,
                required_roles=list(roles),
                roles=list(identity.roles),
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="auth.forbidden")
        return identity

    return _check_roles


# Type alias for administrator-only endpoints
AdminIdentity = Annotated[RequestIdentity, Depends(require_roles(Role.ADMIN))]


def get_auth_service(request: Request) -> AuthService:
    """Get the auth service from app state."""
    return request.app.state.auth_service


def get_message_source(request: Request) -> MessageSource:
    """Get the message source from app state, creating one if missing."""
    if not hasattr(request.app.state, "message_source"):
        request.app.state.message_source = MessageSource()
    return request.app.state.message_source


def get_locale(
    request: Request,
    messages: Annotated[MessageSource, Depends(get_message_source)],
) -> str:
    """Negotiate the response locale from ``Accept-Language``."""
    return messages.resolve_locale(request.headers.get("accept-language"))


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
MessagesDep = Annotated[MessageSource, Depends(get_message_source)]
LocaleDep = Annotated[str, Depends(get_locale)]
