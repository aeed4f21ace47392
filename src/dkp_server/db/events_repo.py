"""Event repository operations for the SQLite backend."""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error

_EVENT_COLUMNS = "id, title, description, start_time, end_time, dkp_reward, created_at"

UPDATABLE_FIELDS = frozenset({"title", "description", "start_time", "end_time", "dkp_reward"})


def create_event(
    conn: sqlite3.Connection,
    title: str,
    start_time: str,
    end_time: str,
    dkp_reward: int,
    *,
    description: str | None = None,
) -> int:
    """Insert an event. Times must already be encoded with ``to_db_timestamp``.

    Raises:
        sqlite3.IntegrityError: ``start_time >= end_time`` or a negative reward.
    """
    try:
        cursor = conn.execute(
            """
            INSERT INTO events (title, description, start_time, end_time, dkp_reward)
            VALUES (?, ?, ?, ?, ?)
            """,
            (title, description, start_time, end_time, dkp_reward),
        )
        return int(cursor.lastrowid)
    except Exception as exc:
        raise_write_error("events.create_event", exc, details=f"title={title!r}")


def get_event(conn: sqlite3.Connection, event_id: int) -> dict[str, Any] | None:
    """Return one event with its attendance count, or ``None``."""
    try:
        row = conn.execute(
            f"""
            SELECT {_EVENT_COLUMNS},
                   (SELECT COUNT(*) FROM attendances a WHERE a.event_id = events.id) AS attendance_count
            FROM events WHERE id = ?
            """,
            (event_id,),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("events.get_event", exc, details=f"event_id={event_id}")


def list_events(
    conn: sqlite3.Connection,
    *,
    start_from: str | None = None,
    start_until: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """List events newest start first.

    Returns:
        ``(rows, total)`` where ``total`` ignores limit/offset.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if start_from:
        clauses.append("start_time >= ?")
        params.append(start_from)
    if start_until:
        clauses.append("start_time <= ?")
        params.append(start_until)
    if search:
        clauses.append("(title LIKE ? OR description LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    try:
        total = conn.execute(f"SELECT COUNT(*) FROM events {where}", params).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT {_EVENT_COLUMNS},
                   (SELECT COUNT(*) FROM attendances a WHERE a.event_id = events.id) AS attendance_count
            FROM events {where}
            ORDER BY start_time DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows], int(total)
    except Exception as exc:
        raise_read_error("events.list_events", exc)


def list_upcoming_events(
    conn: sqlite3.Connection, now: str, until: str, *, limit: int = 10
) -> list[dict[str, Any]]:
    """Return events starting in ``(now, until]``, soonest first."""
    try:
        rows = conn.execute(
            f"""
            SELECT {_EVENT_COLUMNS} FROM events
            WHERE start_time > ? AND start_time <= ?
            ORDER BY start_time ASC, id ASC LIMIT ?
            """,
            (now, until, limit),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("events.list_upcoming_events", exc)


def update_event(conn: sqlite3.Connection, event_id: int, fields: dict[str, Any]) -> bool:
    """Update event columns. Returns ``False`` when the event does not exist.

    Raises:
        ValueError: An unknown column was supplied.
        sqlite3.IntegrityError: The update breaks ``start_time < end_time``.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update event fields: {sorted(unknown)}")
    if not fields:
        return get_event(conn, event_id) is not None

    assignments = ", ".join(f"{column} = ?" for column in fields)
    try:
        cursor = conn.execute(
            f"UPDATE events SET {assignments} WHERE id = ?",
            [*fields.values(), event_id],
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("events.update_event", exc, details=f"event_id={event_id}")


def delete_event(conn: sqlite3.Connection, event_id: int) -> bool:
    """Delete an event row. Attendances cascade; callers reverse credits first."""
    try:
        return conn.execute("DELETE FROM events WHERE id = ?", (event_id,)).rowcount > 0
    except Exception as exc:
        raise_write_error("events.delete_event", exc, details=f"event_id={event_id}")


def event_stats(conn: sqlite3.Connection, now: str) -> dict[str, int]:
    """Return totals used by the event statistics endpoint."""
    try:
        row = conn.execute(
            """
            SELECT COUNT(*) AS total_events,
                   COALESCE(SUM(CASE WHEN start_time > ? THEN 1 ELSE 0 END), 0) AS upcoming_events,
                   COALESCE(SUM(CASE WHEN end_time <= ? THEN 1 ELSE 0 END), 0) AS past_events,
                   COALESCE(SUM(dkp_reward), 0) AS total_dkp_offered
            FROM events
            """,
            (now, now),
        ).fetchone()
        return {key: int(row[key]) for key in row.keys()}
    except Exception as exc:
        raise_read_error("events.event_stats", exc)
