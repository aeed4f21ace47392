"""User repository operations for the SQLite backend.

Users are created and refreshed by the external identity collaborator (or the
``create-user`` CLI command); inside this project only the ``role`` column is
mutated, and only by admin operations.

Every function takes an open connection so callers choose the transaction
boundary.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error


def upsert_user(conn: sqlite3.Connection, discord_id: str, username: str, *, role: str | None = None) -> int:
    """Create a user or refresh the username of an existing one.

    ``role`` is applied only when the row is created; existing roles are never
    touched here.

    Returns:
        The user id.
    """
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            INSERT INTO users (discord_id, username, role)
            VALUES (?, ?, COALESCE(?, 'MEMBER'))
            ON CONFLICT (discord_id) DO UPDATE SET
                username = excluded.username,
                updated_at = CURRENT_TIMESTAMP
            """,
            (discord_id, username, role),
        )
        cursor.execute("SELECT id FROM users WHERE discord_id = ?", (discord_id,))
        row = cursor.fetchone()
        return int(row[0])
    except Exception as exc:
        raise_write_error("users.upsert_user", exc, details=f"discord_id={discord_id!r}")


def get_user(conn: sqlite3.Connection, user_id: int) -> dict[str, Any] | None:
    """Return one user row as a dict, or ``None``."""
    try:
        row = conn.execute(
            "SELECT id, discord_id, username, role, created_at, updated_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("users.get_user", exc, details=f"user_id={user_id}")


def set_user_role(conn: sqlite3.Connection, user_id: int, role: str) -> bool:
    """Set the role of a user. Returns ``False`` when the user does not exist."""
    try:
        cursor = conn.execute(
            "UPDATE users SET role = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (role, user_id),
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("users.set_user_role", exc, details=f"user_id={user_id}, role={role!r}")


def list_users(
    conn: sqlite3.Connection,
    *,
    role: str | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """List users newest first with their character counts.

    Returns:
        ``(rows, total)`` where ``total`` ignores limit/offset.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if role:
        clauses.append("u.role = ?")
        params.append(role)
    if search:
        clauses.append("(u.username LIKE ? OR u.discord_id LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    try:
        total = conn.execute(f"SELECT COUNT(*) FROM users u {where}", params).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT u.id, u.discord_id, u.username, u.role, u.created_at, u.updated_at,
                   (SELECT COUNT(*) FROM characters c WHERE c.user_id = u.id) AS character_count
            FROM users u
            {where}
            ORDER BY u.created_at DESC, u.id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows], int(total)
    except Exception as exc:
        raise_read_error("users.list_users", exc)


def count_users_by_role(conn: sqlite3.Connection) -> dict[str, int]:
    """Return ``{role: count}`` for every role present."""
    try:
        rows = conn.execute("SELECT role, COUNT(*) FROM users GROUP BY role").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}
    except Exception as exc:
        raise_read_error("users.count_users_by_role", exc)
