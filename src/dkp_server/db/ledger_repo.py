"""Append-only DKP transaction rows.

Rows are only ever appended, and only by the DKP ledger service. There are
no update or delete functions.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from dkp_server.db.errors import raise_read_error, raise_write_error


def append_transaction(
    conn: sqlite3.Connection,
    character_id: int,
    delta: int,
    balance_after: int,
    reason: str,
    *,
    event_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> int:
    """Append one transaction row and return its id."""
    try:
        cursor = conn.execute(
            """
            INSERT INTO dkp_transactions
                (character_id, delta, balance_after, reason, event_id, actor_user_id, note)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (character_id, delta, balance_after, reason, event_id, actor_user_id, note),
        )
        return int(cursor.lastrowid)
    except Exception as exc:
        raise_write_error(
            "ledger.append_transaction",
            exc,
            details=f"character_id={character_id}, reason={reason!r}",
        )


def list_transactions(
    conn: sqlite3.Connection,
    character_id: int,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Return one character's transactions, newest first."""
    try:
        rows = conn.execute(
            """
            SELECT id, character_id, delta, balance_after, reason, event_id,
                   actor_user_id, note, created_at
            FROM dkp_transactions
            WHERE character_id = ?
            ORDER BY id DESC
            LIMIT ? OFFSET ?
            """,
            (character_id, limit, offset),
        ).fetchall()
        return [dict(row) for row in rows]
    except Exception as exc:
        raise_read_error("ledger.list_transactions", exc, details=f"character_id={character_id}")


def sum_deltas(conn: sqlite3.Connection, character_id: int) -> int:
    """Return the sum of every delta recorded for a character."""
    try:
        row = conn.execute(
            "SELECT COALESCE(SUM(delta), 0) FROM dkp_transactions WHERE character_id = ?",
            (character_id,),
        ).fetchone()
        return int(row[0])
    except Exception as exc:
        raise_read_error("ledger.sum_deltas", exc, details=f"character_id={character_id}")
