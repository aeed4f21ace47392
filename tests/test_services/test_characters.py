"""Tests for ``dkp_server.services.characters``."""

import pytest

from dkp_server.services.errors import ConflictError, InvalidArgumentError, NotFoundError


@pytest.mark.db
def test_create_character_defaults(characters, guild_users):
    aria = characters["Aria"]
    assert aria["user_id"] == guild_users["member"].user_id
    assert aria["dkp"] == 0
    assert aria["active"] == "ACTIVE"
    assert aria["role"] == "HEALER"


@pytest.mark.db
def test_character_name_is_unique(engine, characters, guild_users):
    with pytest.raises(ConflictError) as exc_info:
        engine.characters.create_character(guild_users["other"], "Aria")
    assert exc_info.value.reason == "character_exists"


@pytest.mark.db
def test_invalid_profile_fields(engine, guild_users):
    member = guild_users["member"]
    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.characters.create_character(member, "Zed", role="BARD")
    assert exc_info.value.reason == "invalid_combat_role"

    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.characters.create_character(member, "   ")
    assert exc_info.value.reason == "invalid_name"


@pytest.mark.db
@pytest.mark.auth
def test_member_cannot_create_for_another_user(engine, guild_users):
    with pytest.raises(NotFoundError):
        engine.characters.create_character(
            guild_users["member"], "Impostor", owner_user_id=guild_users["other"].user_id
        )


@pytest.mark.db
@pytest.mark.auth
def test_officer_creates_for_another_user(engine, guild_users):
    character = engine.characters.create_character(
        guild_users["officer"], "Recruit", owner_user_id=guild_users["other"].user_id
    )
    assert character["user_id"] == guild_users["other"].user_id


@pytest.mark.db
def test_internal_caller_needs_an_owner(engine):
    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.characters.create_character(None, "Orphan")
    assert exc_info.value.reason == "owner_required"


@pytest.mark.db
@pytest.mark.auth
def test_update_and_delete_respect_ownership(engine, characters, guild_users):
    cyra_id = characters["Cyra"]["id"]
    with pytest.raises(NotFoundError):
        engine.characters.update_character(cyra_id, {"weapon1": "Bow"}, actor=guild_users["member"])
    with pytest.raises(NotFoundError):
        engine.characters.delete_character(cyra_id, actor=guild_users["member"])

    updated = engine.characters.update_character(cyra_id, {"weapon1": "Bow"}, actor=guild_users["other"])
    assert updated["weapon1"] == "Bow"


@pytest.mark.db
def test_delete_character_removes_dependents(engine, characters, make_event):
    aria_id = characters["Aria"]["id"]
    event = make_event(reward=10)
    item = engine.items.create_item("Gem")
    engine.attendance.record_attendance(event["id"], aria_id)
    engine.wishes.add_wish(aria_id, item["id"])

    engine.characters.delete_character(aria_id)

    with pytest.raises(NotFoundError):
        engine.characters.get_character(aria_id)
    assert engine.attendance.list_event_attendances(event["id"]) == []
    assert engine.items.get_item(item["id"])["wish_count"] == 0


@pytest.mark.db
def test_list_characters_filters(engine, characters, guild_users):
    engine.characters.update_character(characters["Borin"]["id"], {"active": "NOT_ACTIVE"})

    owned = engine.characters.list_characters(user_id=guild_users["member"].user_id)
    assert [c["name"] for c in owned] == ["Aria", "Borin"]
    active = engine.characters.list_characters(active="ACTIVE")
    assert [c["name"] for c in active] == ["Aria", "Cyra"]
