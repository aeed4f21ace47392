"""Schema creation for the SQLite backend.

The schema layer is isolated from query code so schema changes are reviewable
without wading through unrelated repository logic.

Ledger invariants that live in the schema rather than in Python:

- ``attendances`` and ``wishes`` carry a uniqueness constraint on their pair,
  so a lost check-then-insert race fails with ``sqlite3.IntegrityError``
  instead of double-crediting.
- ``characters.dkp`` has ``CHECK (dkp >= 0)``; any delta that would take a
  balance negative aborts its transaction.
- ``events`` enforce ``start_time < end_time`` and a non-negative reward.
"""

from __future__ import annotations

import logging

from dkp_server.db.connection import Database

logger = logging.getLogger(__name__)

TABLE_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        discord_id TEXT NOT NULL UNIQUE,
        username TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'MEMBER'
            CHECK (role IN ('MEMBER', 'OFFICER', 'ADMIN')),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        token TEXT NOT NULL UNIQUE,
        expires_at TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL UNIQUE,
        role TEXT CHECK (role IS NULL OR role IN ('DPS', 'TANK', 'HEALER')),
        weapon1 TEXT,
        weapon2 TEXT,
        combat_power INTEGER,
        gear_image_url TEXT,
        active TEXT NOT NULL DEFAULT 'ACTIVE'
            CHECK (active IN ('ACTIVE', 'NOT_ACTIVE')),
        dkp INTEGER NOT NULL DEFAULT 0 CHECK (dkp >= 0),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        dkp_reward INTEGER NOT NULL DEFAULT 0 CHECK (dkp_reward >= 0),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CHECK (start_time < end_time)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attendances (
        event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE,
        character_id INTEGER NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        credited_dkp INTEGER NOT NULL CHECK (credited_dkp >= 0),
        recorded_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (event_id, character_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        image_url TEXT,
        min_dkp_cost INTEGER NOT NULL DEFAULT 1 CHECK (min_dkp_cost >= 0)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wishes (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        character_id INTEGER NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        item_id INTEGER NOT NULL REFERENCES items(id) ON DELETE CASCADE,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (character_id, item_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dkp_transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        character_id INTEGER NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        delta INTEGER NOT NULL,
        balance_after INTEGER NOT NULL,
        reason TEXT NOT NULL
            CHECK (reason IN ('attendance_credit', 'attendance_reversal', 'manual_adjustment')),
        event_id INTEGER REFERENCES events(id) ON DELETE SET NULL,
        actor_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
        note TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
)

# Hot-path indexes: ownership checks, per-event/per-character attendance
# listings, item ranking joins and per-character ledger history.
INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_characters_user_id ON characters(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_start_time ON events(start_time)",
    "CREATE INDEX IF NOT EXISTS idx_attendances_character_id ON attendances(character_id)",
    "CREATE INDEX IF NOT EXISTS idx_wishes_item_id ON wishes(item_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_dkp_transactions_character "
        "ON dkp_transactions(character_id, id)"
    ),
)


def init_database(db: Database) -> None:
    """Create all tables and indexes if they do not exist yet.

    Safe to call on every startup; every statement is ``IF NOT EXISTS``.
    """
    with db.connection_scope(write=True) as conn:
        for statement in TABLE_STATEMENTS:
            conn.execute(statement)
        for statement in INDEX_STATEMENTS:
            conn.execute(statement)
    logger.info("Database schema ready at %s", db.path)


def list_tables(db: Database) -> list[str]:
    """Return user table names, sorted."""
    with db.connection_scope() as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
    return [str(row[0]) for row in rows]
