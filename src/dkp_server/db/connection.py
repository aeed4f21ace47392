"""SQLite connection primitives for the DKP server DB layer.

This module owns connection creation and low-level SQLite runtime pragmas so
repository code can stay focused on queries and transaction intent.

Components never reach for a module-global connection. They receive a
:class:`Database` handle and open scopes on it; ``get_database()`` builds the
default handle from runtime configuration.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def configure_connection(connection: sqlite3.Connection, *, busy_timeout_ms: int) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the application.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default. Attendance and wish cascades
          depend on it.
        - ``busy_timeout`` lets concurrent ``BEGIN IMMEDIATE`` writers queue
          instead of failing straight away with ``database is locked``.
    """
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    return connection


class Database:
    """Handle on one SQLite database file.

    Args:
        path: Location of the database file. Parent directories are created
            on first connect.
        busy_timeout_ms: SQLite busy timeout applied to every connection.
    """

    def __init__(self, path: Path | str, *, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms

    def __repr__(self) -> str:
        return f"Database(path={str(self.path)!r})"

    def connect(self) -> sqlite3.Connection:
        """Create and configure a new SQLite connection.

        ``isolation_level=None`` hands transaction control to the write scope
        so it can issue ``BEGIN IMMEDIATE`` itself.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self.path), isolation_level=None)
        return configure_connection(connection, busy_timeout_ms=self.busy_timeout_ms)

    @contextmanager
    def connection_scope(self, *, write: bool = False) -> Iterator[sqlite3.Connection]:
        """Yield a configured connection with guaranteed cleanup semantics.

        Args:
            write: When True, the block runs inside one ``BEGIN IMMEDIATE``
                transaction: committed on success, rolled back on any
                exception.

        Behavior:
            - Always closes the connection in ``finally``.
            - ``BEGIN IMMEDIATE`` takes the reserved lock up front, so two
              writers touching the same balance are serialized rather than
              racing between their read and their write.
        """
        connection = self.connect()
        try:
            if write:
                connection.execute("BEGIN IMMEDIATE")
            yield connection
            if write:
                connection.execute("COMMIT")
        except Exception:
            if write and connection.in_transaction:
                try:
                    connection.execute("ROLLBACK")
                except sqlite3.Error:
                    # Preserve the original exception while best-effort rolling back.
                    pass
            raise
        finally:
            connection.close()


def get_database() -> Database:
    """Build a :class:`Database` from the current runtime configuration."""
    from dkp_server.config import config

    return Database(
        config.database.absolute_path,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )
