"""Admin endpoints for user roles, guild statistics and the audit log."""

import logging

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency, require_minimum_role
from dkp_server.api.models import PathId, RoleChangeRequest, RoleChangeResponse, UserListResponse
from dkp_server.api.permissions import Principal, Role
from dkp_server.core.engine import GuildEngine
from dkp_server.db.constants import SQLITE_MAX_INTEGER
from dkp_server.services.roles import RoleChange

logger = logging.getLogger(__name__)


def _role_response(change: RoleChange, verb: str) -> RoleChangeResponse:
    return RoleChangeResponse(
        message=f"User {change.username} {verb} from {change.old_role} to {change.new_role}",
        user_id=change.user_id,
        username=change.username,
        old_role=change.old_role,
        new_role=change.new_role,
    )


def router(engine: GuildEngine) -> APIRouter:
    """Build the admin router with access to the guild engine."""
    api = APIRouter(prefix="/admin", tags=["admin"])
    current_principal = principal_dependency(engine)
    officer = require_minimum_role(current_principal, Role.OFFICER)
    admin = require_minimum_role(current_principal, Role.ADMIN)

    @api.get("/users", response_model=UserListResponse)
    def list_users(
        role: str | None = None,
        search: str | None = None,
        limit: int = Query(default=20, ge=1, le=200),
        offset: int = Query(default=0, ge=0, le=SQLITE_MAX_INTEGER),
        principal: Principal = Depends(admin),
    ):
        """List users with their character counts (Admin only)."""
        users, total = engine.roles.list_users(role=role, search=search, limit=limit, offset=offset)
        return UserListResponse(users=users, total=total, limit=limit, offset=offset)

    @api.put("/users/{user_id}/role", response_model=RoleChangeResponse)
    def change_role(user_id: PathId, request: RoleChangeRequest, principal: Principal = Depends(admin)):
        """Set a user's role (Admin only). Admins cannot demote themselves."""
        change = engine.roles.change_role(user_id, request.role, actor=principal)
        logger.info("Admin %s set role of user %s to %s", principal.username, user_id, change.new_role)
        return _role_response(change, "changed")

    @api.post("/users/{user_id}/promote", response_model=RoleChangeResponse)
    def promote_user(user_id: PathId, principal: Principal = Depends(admin)):
        return _role_response(engine.roles.promote(user_id, actor=principal), "promoted")

    @api.post("/users/{user_id}/demote", response_model=RoleChangeResponse)
    def demote_user(user_id: PathId, principal: Principal = Depends(admin)):
        return _role_response(engine.roles.demote(user_id, actor=principal), "demoted")

    @api.get("/stats")
    def admin_stats(principal: Principal = Depends(officer)):
        """Guild-wide counts (Officer or Admin)."""
        return engine.guild_stats()

    @api.get("/audit-log")
    def audit_log(
        limit: int = Query(default=50, ge=1, le=500),
        action: str | None = None,
        principal: Principal = Depends(admin),
    ):
        """Most recent privileged actions, newest first (Admin only)."""
        if engine.journal is None:
            return {"enabled": False, "entries": []}
        return {"enabled": engine.journal.enabled, "entries": engine.journal.read_recent(limit=limit, action=action)}

    return api
