from typing import Annotated, Optional
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from assetdesk.core.exceptions import (
    AssetDeskError,
    AvailabilityError,
    NotFoundError,
    PersistenceError,
)
from assetdesk.core.logging import current_actor_ctx, get_logger, loan_request_id_ctx
from assetdesk.core.permissions import resolve_permissions
from assetdesk.core.security import decode_access_token
from assetdesk.schemas.actor import Actor
from assetdesk.stores.registry import Stores

logger = get_logger("api.dependencies")

bearer_scheme = HTTPBearer(auto_error=False)

# Exceptions the services raise for the caller to see
DOMAIN_ERRORS = (AssetDeskError, PermissionError)


def get_stores(request: Request) -> Stores:
    """Stores loaded at startup and shared by every request."""
    return request.app.state.stores


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Actor:
    """Decode the bearer token into the acting user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    name = payload.get("sub")
    role = payload.get("role")
    if not name or not role:
        raise credentials_exception

    actor = Actor(
        name=name,
        role=role,
        division=payload.get("division"),
        permissions=resolve_permissions(role, payload.get("permissions")),
    )

    # Set actor context for logging
    current_actor_ctx.set(actor.name)

    return actor


async def bind_loan_request(loan_id: str) -> str:
    """Tag the request's log entries with the loan request in the path."""
    loan_request_id_ctx.set(loan_id)
    return loan_id


def require_permission(*permissions: str) -> Callable:
    """Dependency factory that checks the actor holds at least one of the permissions."""

    async def permission_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if not any(actor.can(p) for p in permissions):
            logger.warning(
                f"Access denied: actor={actor.name} role={actor.role} "
                f"required={list(permissions)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return permission_checker


def http_error(exc: Exception) -> HTTPException:
    """Translate a service exception into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, AvailabilityError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, PersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


StoresDep = Annotated[Stores, Depends(get_stores)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
