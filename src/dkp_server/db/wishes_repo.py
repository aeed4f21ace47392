"""Wish repository operations for the SQLite backend.

``wishes.seq`` grows with every insert and is the ranking tie-break: among
equal balances, the earlier wish ranks first.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error


def insert_wish(conn: sqlite3.Connection, character_id: int, item_id: int) -> int:
    """Insert a wish and return its ``seq``.

    Raises:
        sqlite3.IntegrityError: The pair already exists.
    """
    try:
        cursor = conn.execute(
            "INSERT INTO wishes (character_id, item_id) VALUES (?, ?)",
            (character_id, item_id),
        )
        return int(cursor.lastrowid)
    except Exception as exc:
        raise_write_error(
            "wishes.insert_wish", exc, details=f"character_id={character_id}, item_id={item_id}"
        )


def delete_wish(conn: sqlite3.Connection, character_id: int, item_id: int) -> bool:
    """Delete one wish. Returns ``False`` if it did not exist."""
    try:
        cursor = conn.execute(
            "DELETE FROM wishes WHERE character_id = ? AND item_id = ?",
            (character_id, item_id),
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error(
            "wishes.delete_wish", exc, details=f"character_id={character_id}, item_id={item_id}"
        )


def delete_character_wishes(conn: sqlite3.Connection, character_id: int) -> int:
    """Delete every wish of a character and return how many were removed."""
    try:
        return conn.execute("DELETE FROM wishes WHERE character_id = ?", (character_id,)).rowcount
    except Exception as exc:
        raise_write_error("wishes.delete_character_wishes", exc, details=f"character_id={character_id}")


def list_item_wishers(conn: sqlite3.Connection, item_id: int) -> list[dict[str, Any]]:
    """Return wishing characters of an item, highest balance first.

    Ties keep wish insertion order.
    """
    try:
        rows = conn.execute(
            """
            SELECT c.id AS character_id, c.name AS character_name, c.dkp, c.active,
                   c.user_id, w.seq, w.created_at AS wished_at
            FROM wishes w
            JOIN characters c ON c.id = w.character_id
            WHERE w.item_id = ?
            ORDER BY c.dkp DESC, w.seq ASC
            """,
            (item_id,),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("wishes.list_item_wishers", exc, details=f"item_id={item_id}")


def list_character_wishes(conn: sqlite3.Connection, character_id: int) -> list[dict[str, Any]]:
    """Return items wished by a character, in wish order."""
    try:
        rows = conn.execute(
            """
            SELECT i.id AS item_id, i.name AS item_name, i.image_url, i.min_dkp_cost,
                   w.seq, w.created_at AS wished_at
            FROM wishes w
            JOIN items i ON i.id = w.item_id
            WHERE w.character_id = ?
            ORDER BY w.seq ASC
            """,
            (character_id,),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("wishes.list_character_wishes", exc, details=f"character_id={character_id}")


def most_wished_items(conn: sqlite3.Connection, *, limit: int = 10) -> list[dict[str, Any]]:
    """Return items ordered by number of wishes, then name."""
    try:
        rows = conn.execute(
            """
            SELECT i.id AS item_id, i.name AS item_name, i.min_dkp_cost,
                   COUNT(w.seq) AS wish_count
            FROM items i
            JOIN wishes w ON w.item_id = i.id
            GROUP BY i.id, i.name, i.min_dkp_cost
            ORDER BY wish_count DESC, i.name COLLATE NOCASE
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("wishes.most_wished_items", exc)


def wish_totals(conn: sqlite3.Connection) -> dict[str, int]:
    """Return total wishes, wishing characters and wished items."""
    try:
        row = conn.execute(
            """
            SELECT COUNT(*) AS total_wishes,
                   COUNT(DISTINCT character_id) AS characters_with_wishes,
                   COUNT(DISTINCT item_id) AS items_wished
            FROM wishes
            """
        ).fetchone()
        return {key: int(row[key]) for key in row.keys()}
    except Exception as exc:
        raise_read_error("wishes.wish_totals", exc)


def list_wishes(
    conn: sqlite3.Connection,
    *,
    character_id: int | None = None,
    item_id: int | None = None,
    user_id: int | None = None,
    include_inactive: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """List wishes joined with character, owner and item data, in wish order.

    Returns:
        ``(rows, total)`` where ``total`` ignores limit/offset.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if character_id is not None:
        clauses.append("w.character_id = ?")
        params.append(character_id)
    if item_id is not None:
        clauses.append("w.item_id = ?")
        params.append(item_id)
    if user_id is not None:
        clauses.append("c.user_id = ?")
        params.append(user_id)
    if not include_inactive:
        clauses.append("c.active = 'ACTIVE'")
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    try:
        total = conn.execute(
            f"""
            SELECT COUNT(*) FROM wishes w
            JOIN characters c ON c.id = w.character_id
            {where}
            """,
            params,
        ).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT w.character_id, w.item_id, w.seq, w.created_at AS wished_at,
                   c.name AS character_name, c.role AS character_role, c.dkp, c.active,
                   c.user_id, u.username,
                   i.name AS item_name, i.image_url, i.min_dkp_cost
            FROM wishes w
            JOIN characters c ON c.id = w.character_id
            JOIN users u ON u.id = c.user_id
            JOIN items i ON i.id = w.item_id
            {where}
            ORDER BY w.seq ASC
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows], int(total)
    except Exception as exc:
        raise_read_error("wishes.list_wishes", exc)
