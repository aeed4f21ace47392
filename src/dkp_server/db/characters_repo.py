"""Character repository operations for the SQLite backend.

Characters belong to exactly one user and carry the DKP balance. The balance
column is only ever written through :func:`apply_dkp_delta`, which the DKP
ledger service calls inside the same transaction as the matching
``dkp_transactions`` row.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error

_CHARACTER_COLUMNS = (
    "id, user_id, name, role, weapon1, weapon2, combat_power, gear_image_url, "
    "active, dkp, created_at, updated_at"
)

# Columns a caller may set through update_character().
UPDATABLE_FIELDS = frozenset(
    {"name", "role", "weapon1", "weapon2", "combat_power", "gear_image_url", "active"}
)


def create_character(
    conn: sqlite3.Connection,
    user_id: int,
    name: str,
    *,
    role: str | None = None,
    weapon1: str | None = None,
    weapon2: str | None = None,
    combat_power: int | None = None,
    gear_image_url: str | None = None,
) -> int:
    """Insert a new character with zero DKP.

    Raises:
        sqlite3.IntegrityError: The name is taken or ``user_id`` is unknown.
    """
    try:
        cursor = conn.execute(
            """
            INSERT INTO characters (user_id, name, role, weapon1, weapon2, combat_power, gear_image_url)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, name, role, weapon1, weapon2, combat_power, gear_image_url),
        )
        return int(cursor.lastrowid)
    except Exception as exc:
        raise_write_error("characters.create_character", exc, details=f"name={name!r}")


def get_character(conn: sqlite3.Connection, character_id: int) -> dict[str, Any] | None:
    """Return one character row as a dict, or ``None``."""
    try:
        row = conn.execute(
            f"SELECT {_CHARACTER_COLUMNS} FROM characters WHERE id = ?",
            (character_id,),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("characters.get_character", exc, details=f"character_id={character_id}")


def list_characters(
    conn: sqlite3.Connection,
    *,
    user_id: int | None = None,
    active: str | None = None,
) -> list[dict[str, Any]]:
    """List characters ordered by name, optionally filtered by owner and state."""
    clauses: list[str] = []
    params: list[Any] = []
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if active is not None:
        clauses.append("active = ?")
        params.append(active)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    try:
        rows = conn.execute(
            f"SELECT {_CHARACTER_COLUMNS} FROM characters {where} ORDER BY name COLLATE NOCASE",
            params,
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("characters.list_characters", exc)


def update_character(conn: sqlite3.Connection, character_id: int, fields: dict[str, Any]) -> bool:
    """Update profile columns of a character.

    Unknown keys are rejected with ``ValueError``; ``dkp`` is never updatable
    here. Returns ``False`` when the character does not exist.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update character fields: {sorted(unknown)}")
    if not fields:
        return get_character(conn, character_id) is not None

    assignments = ", ".join(f"{column} = ?" for column in fields)
    try:
        cursor = conn.execute(
            f"UPDATE characters SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [*fields.values(), character_id],
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("characters.update_character", exc, details=f"character_id={character_id}")


def delete_character(conn: sqlite3.Connection, character_id: int) -> bool:
    """Delete a character; attendances, wishes and ledger rows cascade."""
    try:
        return conn.execute("DELETE FROM characters WHERE id = ?", (character_id,)).rowcount > 0
    except Exception as exc:
        raise_write_error("characters.delete_character", exc, details=f"character_id={character_id}")


def get_dkp(conn: sqlite3.Connection, character_id: int) -> int | None:
    """Return the current balance, or ``None`` for an unknown character."""
    try:
        row = conn.execute("SELECT dkp FROM characters WHERE id = ?", (character_id,)).fetchone()
        return int(row[0]) if row else None
    except Exception as exc:
        raise_read_error("characters.get_dkp", exc, details=f"character_id={character_id}")


def apply_dkp_delta(conn: sqlite3.Connection, character_id: int, delta: int) -> int:
    """Add ``delta`` to a balance and return the new balance.

    Raises:
        sqlite3.IntegrityError: The result would be negative.
        LookupError: The character does not exist.
    """
    try:
        cursor = conn.execute(
            "UPDATE characters SET dkp = dkp + ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (delta, character_id),
        )
        if cursor.rowcount == 0:
            raise LookupError(f"character {character_id} not found")
        row = conn.execute("SELECT dkp FROM characters WHERE id = ?", (character_id,)).fetchone()
        return int(row[0])
    except LookupError:
        raise
    except Exception as exc:
        raise_write_error(
            "characters.apply_dkp_delta", exc, details=f"character_id={character_id}, delta={delta}"
        )


def count_characters(conn: sqlite3.Connection) -> dict[str, int]:
    """Return ``{"total": n, "active": n}``."""
    try:
        row = conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(CASE WHEN active = 'ACTIVE' THEN 1 ELSE 0 END), 0) FROM characters"
        ).fetchone()
        return {"total": int(row[0]), "active": int(row[1])}
    except Exception as exc:
        raise_read_error("characters.count_characters", exc)


def total_dkp(conn: sqlite3.Connection) -> int:
    """Return the sum of all balances."""
    try:
        return int(conn.execute("SELECT COALESCE(SUM(dkp), 0) FROM characters").fetchone()[0])
    except Exception as exc:
        raise_read_error("characters.total_dkp", exc)
