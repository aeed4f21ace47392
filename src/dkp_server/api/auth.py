"""Bearer-session authentication dependencies.

Tokens arrive as ``Authorization: Bearer <token>`` and are resolved against
the ``sessions`` table. A missing, unknown or expired token is a 401; a
resolved principal whose role is too low is a 403 (raised as
``ForbiddenError`` and mapped by the app's exception handlers).
"""

from collections.abc import Callable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dkp_server.api.permissions import Principal, Role, require_role
from dkp_server.core.engine import GuildEngine

_bearer = HTTPBearer(auto_error=False)


def principal_dependency(engine: GuildEngine) -> Callable[..., Principal]:
    """Build a dependency that resolves the calling principal."""

    def current_principal(
        credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    ) -> Principal:
        if credentials is None or not credentials.credentials:
            raise HTTPException(
                status_code=401,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        principal = engine.resolve_principal(credentials.credentials)
        if principal is None:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired session",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return principal

    return current_principal


def require_minimum_role(
    current_principal: Callable[..., Principal], minimum_role: Role
) -> Callable[..., Principal]:
    """Build a dependency that also enforces a minimum role."""

    def principal_with_role(principal: Principal = Depends(current_principal)) -> Principal:
        require_role(principal.role, minimum_role)
        return principal

    return principal_with_role
