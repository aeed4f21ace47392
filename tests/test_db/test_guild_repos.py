"""Focused tests for the repository modules under ``dkp_server.db``."""

import sqlite3
from unittest.mock import MagicMock

import pytest

from dkp_server.db import (
    attendance_repo,
    characters_repo,
    events_repo,
    items_repo,
    ledger_repo,
    sessions_repo,
    users_repo,
    wishes_repo,
)
from dkp_server.db.errors import DatabaseReadError, DatabaseWriteError


@pytest.fixture
def conn(db):
    with db.connection_scope(write=True) as connection:
        yield connection


@pytest.fixture
def owner_id(conn) -> int:
    return users_repo.upsert_user(conn, "555", "raidlead")


def _broken_connection() -> MagicMock:
    broken = MagicMock(spec=sqlite3.Connection)
    broken.execute.side_effect = sqlite3.OperationalError("disk I/O error")
    broken.cursor.side_effect = sqlite3.OperationalError("disk I/O error")
    return broken


# ============================================================================
# ERROR WRAPPING
# ============================================================================


@pytest.mark.db
def test_read_paths_raise_typed_errors():
    broken = _broken_connection()
    with pytest.raises(DatabaseReadError) as exc_info:
        characters_repo.get_character(broken, 1)
    assert exc_info.value.context.operation == "characters.get_character"

    with pytest.raises(DatabaseReadError):
        events_repo.list_events(broken)


@pytest.mark.db
def test_write_paths_raise_typed_errors():
    broken = _broken_connection()
    with pytest.raises(DatabaseWriteError):
        users_repo.upsert_user(broken, "1", "ghost")
    with pytest.raises(DatabaseWriteError):
        wishes_repo.insert_wish(broken, 1, 1)


@pytest.mark.db
def test_integrity_errors_pass_through_untouched(conn, owner_id):
    characters_repo.create_character(conn, owner_id, "Aria")
    with pytest.raises(sqlite3.IntegrityError):
        characters_repo.create_character(conn, owner_id, "Aria")


# ============================================================================
# USERS AND SESSIONS
# ============================================================================


@pytest.mark.db
def test_upsert_user_refreshes_name_but_keeps_role(conn):
    user_id = users_repo.upsert_user(conn, "555", "raidlead", role="ADMIN")
    assert users_repo.upsert_user(conn, "555", "raid-lead", role="MEMBER") == user_id

    user = users_repo.get_user(conn, user_id)
    assert user["username"] == "raid-lead"
    assert user["role"] == "ADMIN"


@pytest.mark.db
def test_sessions_resolve_and_expire(conn, owner_id):
    token = sessions_repo.create_session(conn, owner_id, ttl_minutes=60)
    assert sessions_repo.get_session_user(conn, token) == {
        "user_id": owner_id,
        "username": "raidlead",
        "role": "MEMBER",
    }

    expired = sessions_repo.create_session(conn, owner_id, ttl_minutes=-5)
    assert sessions_repo.get_session_user(conn, expired) is None
    assert sessions_repo.count_active_sessions(conn) == 1
    assert sessions_repo.delete_expired_sessions(conn) == 1
    assert sessions_repo.delete_session(conn, token) is True
    assert sessions_repo.get_session_user(conn, token) is None


# ============================================================================
# CHARACTERS AND LEDGER
# ============================================================================


@pytest.mark.db
def test_update_character_rejects_unknown_columns(conn, owner_id):
    character_id = characters_repo.create_character(conn, owner_id, "Aria")
    with pytest.raises(ValueError):
        characters_repo.update_character(conn, character_id, {"dkp": 9000})


@pytest.mark.db
def test_apply_dkp_delta(conn, owner_id):
    character_id = characters_repo.create_character(conn, owner_id, "Aria")

    assert characters_repo.apply_dkp_delta(conn, character_id, 30) == 30
    with pytest.raises(sqlite3.IntegrityError):
        characters_repo.apply_dkp_delta(conn, character_id, -31)
    with pytest.raises(LookupError):
        characters_repo.apply_dkp_delta(conn, 9999, 5)
    assert characters_repo.get_dkp(conn, character_id) == 30
    assert characters_repo.get_dkp(conn, 9999) is None


@pytest.mark.db
def test_ledger_transactions_newest_first(conn, owner_id):
    character_id = characters_repo.create_character(conn, owner_id, "Aria")
    ledger_repo.append_transaction(conn, character_id, 10, 10, "manual_adjustment")
    ledger_repo.append_transaction(conn, character_id, -4, 6, "manual_adjustment", note="fine")

    rows = ledger_repo.list_transactions(conn, character_id)
    assert [row["delta"] for row in rows] == [-4, 10]
    assert ledger_repo.sum_deltas(conn, character_id) == 6


@pytest.mark.db
def test_ledger_reason_is_constrained(conn, owner_id):
    character_id = characters_repo.create_character(conn, owner_id, "Aria")
    with pytest.raises(sqlite3.IntegrityError):
        ledger_repo.append_transaction(conn, character_id, 1, 1, "bribe")


# ============================================================================
# ATTENDANCE, ITEMS AND WISHES
# ============================================================================


@pytest.mark.db
def test_attendance_pair_is_unique(conn, owner_id):
    character_id = characters_repo.create_character(conn, owner_id, "Aria")
    event_id = events_repo.create_event(
        conn, "Raid", "2025-10-07T19:00:00+00:00", "2025-10-07T22:00:00+00:00", 50
    )
    attendance_repo.insert_attendance(conn, event_id, character_id, 50)

    with pytest.raises(sqlite3.IntegrityError):
        attendance_repo.insert_attendance(conn, event_id, character_id, 50)
    assert attendance_repo.get_attendance(conn, event_id, character_id)["credited_dkp"] == 50
    assert attendance_repo.delete_attendance(conn, event_id, character_id) is True
    assert attendance_repo.delete_attendance(conn, event_id, character_id) is False


@pytest.mark.db
def test_item_wishers_ordered_by_balance_then_seq(conn, owner_id):
    item_id = items_repo.create_item(conn, "Crown", min_dkp_cost=5)
    first = characters_repo.create_character(conn, owner_id, "First")
    second = characters_repo.create_character(conn, owner_id, "Second")
    rich = characters_repo.create_character(conn, owner_id, "Rich")
    characters_repo.apply_dkp_delta(conn, rich, 100)
    for character_id in (first, second, rich):
        wishes_repo.insert_wish(conn, character_id, item_id)

    names = [row["character_name"] for row in wishes_repo.list_item_wishers(conn, item_id)]
    assert names == ["Rich", "First", "Second"]
    assert items_repo.get_item(conn, item_id)["wish_count"] == 3


@pytest.mark.db
def test_list_items_search(conn):
    items_repo.create_item(conn, "Crown of Thorns")
    items_repo.create_item(conn, "Boots")

    rows, total = items_repo.list_items(conn, search="crown")
    assert total == 1
    assert rows[0]["name"] == "Crown of Thorns"
    assert items_repo.count_items(conn) == 2
