"""Item repository operations for the SQLite backend."""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error

UPDATABLE_FIELDS = frozenset({"name", "image_url", "min_dkp_cost"})


def create_item(
    conn: sqlite3.Connection,
    name: str,
    *,
    image_url: str | None = None,
    min_dkp_cost: int = 1,
) -> int:
    """Insert an item.

    Raises:
        sqlite3.IntegrityError: The name is taken.
    """
    try:
        cursor = conn.execute(
            "INSERT INTO items (name, image_url, min_dkp_cost) VALUES (?, ?, ?)",
            (name, image_url, min_dkp_cost),
        )
        return int(cursor.lastrowid)
    except Exception as exc:
        raise_write_error("items.create_item", exc, details=f"name={name!r}")


def get_item(conn: sqlite3.Connection, item_id: int) -> dict[str, Any] | None:
    """Return one item with its wish count, or ``None``."""
    try:
        row = conn.execute(
            """
            SELECT i.id, i.name, i.image_url, i.min_dkp_cost,
                   (SELECT COUNT(*) FROM wishes w WHERE w.item_id = i.id) AS wish_count
            FROM items i WHERE i.id = ?
            """,
            (item_id,),
        ).fetchone()
        return dict(row) if row else None
    except Exception as exc:
        raise_read_error("items.get_item", exc, details=f"item_id={item_id}")


def list_items(
    conn: sqlite3.Connection,
    *,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """List items by name with wish counts. Returns ``(rows, total)``."""
    where = "WHERE i.name LIKE ?" if search else ""
    params: list[Any] = [f"%{search}%"] if search else []
    try:
        total = conn.execute(f"SELECT COUNT(*) FROM items i {where}", params).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT i.id, i.name, i.image_url, i.min_dkp_cost,
                   (SELECT COUNT(*) FROM wishes w WHERE w.item_id = i.id) AS wish_count
            FROM items i {where}
            ORDER BY i.name COLLATE NOCASE
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        return [dict(row) for row in rows], int(total)
    except Exception as exc:
        raise_read_error("items.list_items", exc)


def update_item(conn: sqlite3.Connection, item_id: int, fields: dict[str, Any]) -> bool:
    """Update item columns. Returns ``False`` when the item does not exist."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update item fields: {sorted(unknown)}")
    if not fields:
        return get_item(conn, item_id) is not None

    assignments = ", ".join(f"{column} = ?" for column in fields)
    try:
        cursor = conn.execute(
            f"UPDATE items SET {assignments} WHERE id = ?",
            [*fields.values(), item_id],
        )
        return cursor.rowcount > 0
    except Exception as exc:
        raise_write_error("items.update_item", exc, details=f"item_id={item_id}")


def delete_item(conn: sqlite3.Connection, item_id: int) -> bool:
    """Delete an item; its wishes cascade."""
    try:
        return conn.execute("DELETE FROM items WHERE id = ?", (item_id,)).rowcount > 0
    except Exception as exc:
        raise_write_error("items.delete_item", exc, details=f"item_id={item_id}")


def count_items(conn: sqlite3.Connection) -> int:
    """Return the number of items."""
    try:
        return int(conn.execute("SELECT COUNT(*) FROM items").fetchone()[0])
    except Exception as exc:
        raise_read_error("items.count_items", exc)
