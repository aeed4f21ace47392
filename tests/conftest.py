"""
Shared pytest fixtures for the guild DKP server test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite databases wired through ``use_test_database``
- A ``GuildEngine`` with an isolated audit journal
- Seeded users for every role, with live bearer tokens
- Sample characters and an event factory
- A FastAPI ``TestClient`` bound to the test engine

Every fixture is function-scoped so each test starts from an empty guild.
"""

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from dkp_server.api.permissions import Principal
from dkp_server.api.server import create_app
from dkp_server.audit import AuditJournal
from dkp_server.config import use_test_database
from dkp_server.core.engine import GuildEngine
from dkp_server.db.connection import Database
from dkp_server.db.schema import init_database
from dkp_server.services.recurrence import EventTemplate

# Tuesday 2025-10-07 19:00 UTC
RAID_START = datetime(2025, 10, 7, 19, 0, tzinfo=UTC)

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Point the runtime configuration at a fresh database file.

    Yields:
        Path to the temporary database file
    """
    db_path = tmp_path / "test_dkp.db"
    with use_test_database(db_path):
        yield db_path


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Database:
    """Database handle with the production schema and no rows."""
    database = Database(temp_db_path)
    init_database(database)
    return database


@pytest.fixture(scope="function")
def journal(tmp_path: Path) -> AuditJournal:
    """Audit journal isolated under ``tmp_path``."""
    return AuditJournal(tmp_path / "audit" / "guild.jsonl")


# ============================================================================
# ENGINE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def engine(db: Database, journal: AuditJournal) -> GuildEngine:
    """Guild engine over the test database."""
    return GuildEngine(db, journal=journal)


@pytest.fixture(scope="function")
def guild_users(engine: GuildEngine) -> dict[str, Principal]:
    """
    Create one user per role plus a second member.

    Returns:
        Dict mapping usernames (admin, officer, member, other) to principals
    """
    users = {
        "admin": "ADMIN",
        "officer": "OFFICER",
        "member": "MEMBER",
        "other": "MEMBER",
    }
    principals = {}
    for index, (username, role) in enumerate(users.items(), start=1):
        user_id = engine.register_user(f"10000{index}", username, role=role)
        principals[username] = Principal(user_id=user_id, username=username, role=role)
    return principals


@pytest.fixture(scope="function")
def characters(engine: GuildEngine, guild_users: dict[str, Principal]) -> dict[str, dict[str, Any]]:
    """
    Sample characters with zero balance.

    ``Aria`` and ``Borin`` belong to ``member``; ``Cyra`` belongs to ``other``.
    """
    member = guild_users["member"]
    other = guild_users["other"]
    return {
        "Aria": engine.characters.create_character(member, "Aria", role="HEALER"),
        "Borin": engine.characters.create_character(member, "Borin", role="TANK"),
        "Cyra": engine.characters.create_character(other, "Cyra", role="DPS"),
    }


@pytest.fixture(scope="function")
def make_event(engine: GuildEngine) -> Callable[..., dict[str, Any]]:
    """Factory creating a three-hour event; ``offset_days`` shifts the start."""

    def _make(title: str = "Raid Night", *, reward: int = 50, offset_days: int = 0) -> dict[str, Any]:
        start = RAID_START + timedelta(days=offset_days)
        return engine.events.create_event(
            EventTemplate(
                title=title,
                start_time=start,
                end_time=start + timedelta(hours=3),
                dkp_reward=reward,
            )
        )

    return _make


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def test_client(engine: GuildEngine) -> TestClient:
    """FastAPI TestClient serving the test engine."""
    return TestClient(create_app(engine))


@pytest.fixture(scope="function")
def auth_headers(engine: GuildEngine, guild_users: dict[str, Principal]) -> dict[str, dict[str, str]]:
    """
    Bearer headers per seeded user.

    Example:
        test_client.get("/characters", headers=auth_headers["member"])
    """
    return {
        username: {"Authorization": f"Bearer {engine.issue_session(principal.user_id)}"}
        for username, principal in guild_users.items()
    }
