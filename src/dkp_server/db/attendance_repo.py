"""Attendance repository operations for the SQLite backend.

The ``(event_id, character_id)`` primary key is the real uniqueness guard;
``insert_attendance`` lets ``sqlite3.IntegrityError`` escape so the
attendance engine can report a duplicate as a conflict.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error


def insert_attendance(conn: sqlite3.Connection, event_id: int, character_id: int, credited_dkp: int) -> None:
    """Insert an attendance row carrying the credited amount."""
    try:
        conn.execute(
            "INSERT INTO attendances (event_id, character_id, credited_dkp) VALUES (?, ?, ?)",
            (event_id, character_id, credited_dkp),
        )
    except Exception as exc:
        raise_write_error(
            "attendance.insert_attendance",
            exc,
            details=f"event_id={event_id}, character_id={character_id}",
        )


def get_attendance(conn: sqlite3.Connection, event_id: int, character_id: int) -> dict[str, Any] | None:
    """Return one attendance row, or ``None``."""
    try:
        row = conn.execute(
            """
            SELECT event_id, character_id, credited_dkp, recorded_at
            FROM attendances WHERE event_id = ? AND character_id = ?
            """,
            (event_id, character_id),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error(
            "attendance.get_attendance",
            exc,
            details=f"event_id={event_id}, character_id={character_id}",
        )


def delete_attendance(conn: sqlite3.Connection, event_id: int, character_id: int) -> bool:
    """Delete one attendance row. Returns ``False`` if it did not exist."""
    try:
        cursor = conn.execute(
            "DELETE FROM attendances WHERE event_id = ? AND character_id = ?",
            (event_id, character_id),
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error(
            "attendance.delete_attendance",
            exc,
            details=f"event_id={event_id}, character_id={character_id}",
        )


def list_for_event(conn: sqlite3.Connection, event_id: int) -> list[dict[str, Any]]:
    """Return attendances of one event joined with character data, by name."""
    try:
        rows = conn.execute(
            """
            SELECT a.event_id, a.character_id, a.credited_dkp, a.recorded_at,
                   c.name AS character_name, c.role AS character_role, c.user_id
            FROM attendances a
            JOIN characters c ON c.id = a.character_id
            WHERE a.event_id = ?
            ORDER BY c.name COLLATE NOCASE
            """,
            (event_id,),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("attendance.list_for_event", exc, details=f"event_id={event_id}")


def list_for_character(conn: sqlite3.Connection, character_id: int) -> list[dict[str, Any]]:
    """Return attendances of one character joined with event data, newest first."""
    try:
        rows = conn.execute(
            """
            SELECT a.event_id, a.character_id, a.credited_dkp, a.recorded_at,
                   e.title AS event_title, e.start_time, e.end_time, e.dkp_reward
            FROM attendances a
            JOIN events e ON e.id = a.event_id
            WHERE a.character_id = ?
            ORDER BY e.start_time DESC, a.event_id DESC
            """,
            (character_id,),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("attendance.list_for_character", exc, details=f"character_id={character_id}")


_LIST_SORT_COLUMNS = {"event_id": "a.event_id", "character_id": "a.character_id", "recorded_at": "a.recorded_at"}


def list_attendances(
    conn: sqlite3.Connection,
    *,
    event_id: int | None = None,
    character_id: int | None = None,
    user_id: int | None = None,
    sort_by: str = "event_id",
    descending: bool = True,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """List attendances joined with event and character data.

    Unknown ``sort_by`` values fall back to ``event_id``.

    Returns:
        ``(rows, total)`` where ``total`` ignores limit/offset.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if event_id is not None:
        clauses.append("a.event_id = ?")
        params.append(event_id)
    if character_id is not None:
        clauses.append("a.character_id = ?")
        params.append(character_id)
    if user_id is not None:
        clauses.append("c.user_id = ?")
        params.append(user_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    column = _LIST_SORT_COLUMNS.get(sort_by, "a.event_id")
    direction = "DESC" if descending else "ASC"
    try:
        total = conn.execute(
            f"""
            SELECT COUNT(*) FROM attendances a
            JOIN characters c ON c.id = a.character_id
            {where}
            """,
            params,
        ).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT a.event_id, a.character_id, a.credited_dkp, a.recorded_at,
                   e.title AS event_title, e.start_time, e.end_time, e.dkp_reward,
                   c.name AS character_name, c.role AS character_role, c.dkp, c.user_id
            FROM attendances a
            JOIN events e ON e.id = a.event_id
            JOIN characters c ON c.id = a.character_id
            {where}
            ORDER BY {column} {direction}, a.event_id DESC, a.character_id ASC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows], int(total)
    except Exception as exc:
        raise_read_error("attendance.list_attendances", exc)


def _stats_filter(
    *,
    start: str | None,
    end: str | None,
    character_id: int | None,
    user_id: int | None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if start:
        clauses.append("e.start_time >= ?")
        params.append(start)
    if end:
        clauses.append("e.start_time <= ?")
        params.append(end)
    if character_id is not None:
        clauses.append("a.character_id = ?")
        params.append(character_id)
    if user_id is not None:
        clauses.append("c.user_id = ?")
        params.append(user_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def attendance_totals(
    conn: sqlite3.Connection,
    *,
    start: str | None = None,
    end: str | None = None,
    character_id: int | None = None,
    user_id: int | None = None,
) -> dict[str, int]:
    """Return total rows, distinct events, distinct characters and credited sum."""
    where, params = _stats_filter(start=start, end=end, character_id=character_id, user_id=user_id)
    try:
        row = conn.execute(
            f"""
            SELECT COUNT(*) AS total_attendances,
                   COUNT(DISTINCT a.event_id) AS unique_events,
                   COUNT(DISTINCT a.character_id) AS unique_characters,
                   COALESCE(SUM(a.credited_dkp), 0) AS total_dkp_credited
            FROM attendances a
            JOIN events e ON e.id = a.event_id
            JOIN characters c ON c.id = a.character_id
            {where}
            """,
            params,
        ).fetchone()
        return {key: int(row[key]) for key in row.keys()}
    except Exception as exc:
        raise_read_error("attendance.attendance_totals", exc)


def top_attenders(
    conn: sqlite3.Connection,
    *,
    start: str | None = None,
    end: str | None = None,
    character_id: int | None = None,
    user_id: int | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Return characters with the most attendances in the filtered window."""
    where, params = _stats_filter(start=start, end=end, character_id=character_id, user_id=user_id)
    try:
        rows = conn.execute(
            f"""
            SELECT c.id AS character_id, c.name AS character_name,
                   COUNT(*) AS attendance_count,
                   COALESCE(SUM(a.credited_dkp), 0) AS dkp_earned
            FROM attendances a
            JOIN events e ON e.id = a.event_id
            JOIN characters c ON c.id = a.character_id
            {where}
            GROUP BY c.id, c.name
            ORDER BY attendance_count DESC, dkp_earned DESC, c.id ASC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("attendance.top_attenders", exc)
