"""User role management.

Only admins change roles (enforced at the route). The self-demotion guard
lives here so every entry point honours it: an admin can never move their
own role below ADMIN, which keeps at least the acting admin in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from dkp_server.api.permissions import ROLE_ORDER, Principal, Role, get_role_hierarchy_level
from dkp_server.audit import AuditJournal, actor_payload
from dkp_server.db import users_repo
from dkp_server.db.connection import Database
from dkp_server.services.errors import ConflictError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RoleChange:
    user_id: int
    username: str
    old_role: str
    new_role: str


def _parse_role(role: str) -> Role:
    try:
        return Role(str(role).upper())
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Invalid role: {role}. Must be one of {[r.value for r in Role]}", reason="invalid_role"
        ) from exc


class RoleManager:
    def __init__(self, db: Database, journal: AuditJournal | None = None) -> None:
        self.db = db
        self.journal = journal

    def change_role(self, user_id: int, new_role: str, *, actor: Principal | None = None) -> RoleChange:
        """Set a user's role.

        Raises:
            InvalidArgumentError: Unknown role name.
            NotFoundError: Unknown user.
            ConflictError: An admin tried to lower their own role.
        """
        target_role = _parse_role(new_role)
        with self.db.connection_scope(write=True) as conn:
            user = users_repo.get_user(conn, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", reason="user_not_found")
            if (
                actor is not None
                and actor.user_id == user_id
                and get_role_hierarchy_level(target_role.value) < get_role_hierarchy_level(Role.ADMIN.value)
            ):
                raise ConflictError("Cannot demote yourself", reason="self_demotion")
            users_repo.set_user_role(conn, user_id, target_role.value)

        change = RoleChange(
            user_id=user_id, username=user["username"], old_role=user["role"], new_role=target_role.value
        )
        logger.info("Role changed: user=%s %s -> %s", user_id, change.old_role, change.new_role)
        if self.journal is not None:
            self.journal.record(
                "user.role_changed",
                {"user_id": user_id, "old_role": change.old_role, "new_role": change.new_role},
                actor=actor_payload(actor),
            )
        return change

    def _step(self, user_id: int, step: int, *, actor: Principal | None) -> RoleChange:
        with self.db.connection_scope() as conn:
            user = users_repo.get_user(conn, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", reason="user_not_found")
        current = _parse_role(user["role"])
        index = ROLE_ORDER.index(current) + step
        if index >= len(ROLE_ORDER):
            raise InvalidArgumentError("User is already at the highest role", reason="already_highest_role")
        if index < 0:
            raise InvalidArgumentError("User is already at the lowest role", reason="already_lowest_role")
        return self.change_role(user_id, ROLE_ORDER[index].value, actor=actor)

    def promote(self, user_id: int, *, actor: Principal | None = None) -> RoleChange:
        """Raise a user one level (MEMBER -> OFFICER -> ADMIN)."""
        return self._step(user_id, 1, actor=actor)

    def demote(self, user_id: int, *, actor: Principal | None = None) -> RoleChange:
        """Lower a user one level (ADMIN -> OFFICER -> MEMBER)."""
        return self._step(user_id, -1, actor=actor)

    def list_users(
        self, *, role: str | None = None, search: str | None = None, limit: int = 20, offset: int = 0
    ) -> tuple[list[dict[str, Any]], int]:
        if role is not None:
            role = _parse_role(role).value
        with self.db.connection_scope() as conn:
            return users_repo.list_users(conn, role=role, search=search, limit=limit, offset=offset)
