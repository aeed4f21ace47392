"""Bearer session repository operations.

Session tokens are opaque strings. Issuing them belongs to the identity
collaborator; this module stores them, resolves a live token to its user and
prunes expired rows.
"""

from __future__ import annotations

import secrets
import sqlite3
from datetime import timedelta
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error
from dkp_server.db.timestamps import to_db_timestamp, utc_now


def create_session(conn: sqlite3.Connection, user_id: int, *, ttl_minutes: int) -> str:
    """Create a session row for ``user_id`` and return its new token."""
    token = secrets.token_urlsafe(32)
    expires_at = to_db_timestamp(utc_now() + timedelta(minutes=ttl_minutes))
    try:
        conn.execute(
            "INSERT INTO sessions (user_id, token, expires_at) VALUES (?, ?, ?)",
            (user_id, token, expires_at),
        )
        return token
    except Exception as exc:
        raise_write_error("sessions.create_session", exc, details=f"user_id={user_id}")


def get_session_user(conn: sqlite3.Connection, token: str) -> dict[str, Any] | None:
    """Resolve a live token to ``{user_id, username, role}``.

    Expired tokens resolve to ``None`` exactly like unknown ones.
    """
    try:
        row = conn.execute(
            """
            SELECT u.id AS user_id, u.username, u.role
            FROM sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.token = ? AND s.expires_at > ?
            """,
            (token, to_db_timestamp(utc_now())),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("sessions.get_session_user", exc)


def delete_session(conn: sqlite3.Connection, token: str) -> bool:
    """Delete one session. Returns ``False`` if the token was unknown."""
    try:
        return conn.execute("DELETE FROM sessions WHERE token = ?", (token,)).rowcount > 0
    except Exception as exc:
        raise_write_error("sessions.delete_session", exc)


def delete_expired_sessions(conn: sqlite3.Connection) -> int:
    """Delete every expired session and return how many were removed."""
    try:
        cursor = conn.execute(
            "DELETE FROM sessions WHERE expires_at <= ?",
            (to_db_timestamp(utc_now()),),
        )
        return cursor.rowcount
    except Exception as exc:
        raise_write_error("sessions.delete_expired_sessions", exc)


def count_active_sessions(conn: sqlite3.Connection) -> int:
    """Return the number of unexpired sessions."""
    try:
        row = conn.execute(
            "SELECT COUNT(*) FROM sessions WHERE expires_at > ?",
            (to_db_timestamp(utc_now()),),
        ).fetchone()
        return int(row[0])
    except Exception as exc:
        raise_read_error("sessions.count_active_sessions", exc)
