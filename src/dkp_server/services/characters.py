"""Character management and ownership checks.

Members act only on characters they own; officers and admins act on any.
A character the caller may not act on is reported exactly like a missing
one (NotFound `character_not_found`).
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from dkp_server.api.permissions import Principal, can_act_on_character
from dkp_server.db import characters_repo
from dkp_server.db.connection import Database
from dkp_server.db.constants import CHARACTER_STATES, COMBAT_ROLES
from dkp_server.services.errors import ConflictError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


def require_character(conn: sqlite3.Connection, character_id: int) -> dict[str, Any]:
    """Load a character or raise NotFoundError."""
    character = characters_repo.get_character(conn, character_id)
    if character is None:
        raise NotFoundError(f"Character {character_id} not found", reason="character_not_found")
    return character


def require_actionable_character(
    conn: sqlite3.Connection, character_id: int, actor: Principal | None
) -> dict[str, Any]:
    """Load a character the actor may act on, or raise NotFoundError."""
    character = require_character(conn, character_id)
    if not can_act_on_character(actor, character["user_id"]):
        raise NotFoundError(f"Character {character_id} not found", reason="character_not_found")
    return character


def _validate_profile(fields: dict[str, Any]) -> None:
    if "name" in fields and (fields["name"] is None or not str(fields["name"]).strip()):
        raise InvalidArgumentError("Character name is required", reason="invalid_name")
    role = fields.get("role")
    if role is not None and role not in COMBAT_ROLES:
        raise InvalidArgumentError(f"Unknown combat role: {role}", reason="invalid_combat_role")
    active = fields.get("active")
    if "active" in fields and active not in CHARACTER_STATES:
        raise InvalidArgumentError(f"Unknown character state: {active}", reason="invalid_state")
    power = fields.get("combat_power")
    if power is not None and power < 0:
        raise InvalidArgumentError("Combat power cannot be negative", reason="invalid_combat_power")


class CharacterService:
    """CRUD over characters with ownership enforcement."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create_character(
        self,
        actor: Principal | None,
        name: str,
        *,
        owner_user_id: int | None = None,
        role: str | None = None,
        weapon1: str | None = None,
        weapon2: str | None = None,
        combat_power: int | None = None,
        gear_image_url: str | None = None,
    ) -> dict[str, Any]:
        """Create a character owned by ``owner_user_id`` (default: the actor).

        Raises:
            InvalidArgumentError: Bad profile fields, or no owner resolvable.
            NotFoundError: A member tried to create a character for someone else.
            ConflictError: The name is taken.
        """
        if owner_user_id is None:
            if actor is None:
                raise InvalidArgumentError("An owner is required", reason="owner_required")
            owner_user_id = actor.user_id
        if not can_act_on_character(actor, owner_user_id):
            raise NotFoundError(f"User {owner_user_id} not found", reason="user_not_found")
        _validate_profile({"name": name, "role": role, "combat_power": combat_power})

        try:
            with self.db.connection_scope(write=True) as conn:
                character_id = characters_repo.create_character(
                    conn,
                    owner_user_id,
                    name.strip(),
                    role=role,
                    weapon1=weapon1,
                    weapon2=weapon2,
                    combat_power=combat_power,
                    gear_image_url=gear_image_url,
                )
                character = require_character(conn, character_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Character name '{name}' is already taken (or owner is unknown)",
                reason="character_exists",
            ) from exc
        logger.info("Character created: id=%s name=%r owner=%s", character_id, name, owner_user_id)
        return character

    def get_character(self, character_id: int) -> dict[str, Any]:
        with self.db.connection_scope() as conn:
            return require_character(conn, character_id)

    def list_characters(
        self, *, user_id: int | None = None, active: str | None = None
    ) -> list[dict[str, Any]]:
        with self.db.connection_scope() as conn:
            return characters_repo.list_characters(conn, user_id=user_id, active=active)

    def update_character(
        self, character_id: int, fields: dict[str, Any], *, actor: Principal | None = None
    ) -> dict[str, Any]:
        """Update profile fields; ``dkp`` cannot be set this way.

        Raises:
            NotFoundError: Unknown or not actionable character.
            InvalidArgumentError: Bad field values.
            ConflictError: The new name is taken.
        """
        _validate_profile(fields)
        if "name" in fields:
            fields = {**fields, "name": str(fields["name"]).strip()}
        try:
            with self.db.connection_scope(write=True) as conn:
                require_actionable_character(conn, character_id, actor)
                characters_repo.update_character(conn, character_id, fields)
                return require_character(conn, character_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Character name '{fields.get('name')}' is already taken", reason="character_exists"
            ) from exc

    def delete_character(self, character_id: int, *, actor: Principal | None = None) -> None:
        """Delete a character with its attendances, wishes and ledger rows."""
        with self.db.connection_scope(write=True) as conn:
            require_actionable_character(conn, character_id, actor)
            characters_repo.delete_character(conn, character_id)
        logger.info("Character deleted: id=%s", character_id)
