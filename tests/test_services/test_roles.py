"""Tests for ``dkp_server.services.roles``."""

import pytest

from dkp_server.services.errors import ConflictError, InvalidArgumentError, NotFoundError


@pytest.mark.db
@pytest.mark.admin
def test_change_role_sets_role_and_journals(engine, guild_users, journal):
    member = guild_users["member"]

    change = engine.roles.change_role(member.user_id, "officer", actor=guild_users["admin"])

    assert (change.old_role, change.new_role) == ("MEMBER", "OFFICER")
    assert engine.resolve_principal(engine.issue_session(member.user_id)).role == "OFFICER"
    [entry] = journal.read_recent(action="user.role_changed")
    assert entry["data"] == {"user_id": member.user_id, "old_role": "MEMBER", "new_role": "OFFICER"}
    assert entry["actor"]["username"] == "admin"


@pytest.mark.db
@pytest.mark.admin
def test_admin_cannot_demote_self(engine, guild_users):
    admin = guild_users["admin"]

    with pytest.raises(ConflictError) as exc_info:
        engine.roles.change_role(admin.user_id, "MEMBER", actor=admin)
    assert exc_info.value.reason == "self_demotion"

    with pytest.raises(ConflictError):
        engine.roles.demote(admin.user_id, actor=admin)


@pytest.mark.db
@pytest.mark.admin
def test_promote_and_demote_step_one_level(engine, guild_users):
    member = guild_users["member"]
    admin = guild_users["admin"]

    assert engine.roles.promote(member.user_id, actor=admin).new_role == "OFFICER"
    assert engine.roles.promote(member.user_id, actor=admin).new_role == "ADMIN"
    assert engine.roles.demote(member.user_id, actor=admin).new_role == "OFFICER"


@pytest.mark.db
@pytest.mark.admin
def test_promote_beyond_admin_and_demote_below_member(engine, guild_users):
    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.roles.promote(guild_users["admin"].user_id)
    assert exc_info.value.reason == "already_highest_role"

    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.roles.demote(guild_users["member"].user_id)
    assert exc_info.value.reason == "already_lowest_role"


@pytest.mark.db
@pytest.mark.admin
def test_change_role_rejects_unknown_role_and_user(engine, guild_users):
    with pytest.raises(InvalidArgumentError) as exc_info:
        engine.roles.change_role(guild_users["member"].user_id, "raid_leader")
    assert exc_info.value.reason == "invalid_role"

    with pytest.raises(NotFoundError) as exc_info:
        engine.roles.change_role(9999, "OFFICER")
    assert exc_info.value.reason == "user_not_found"


@pytest.mark.db
@pytest.mark.admin
def test_list_users_filters_by_role(engine, guild_users, characters):
    users, total = engine.roles.list_users(role="member")

    assert total == 2
    assert {user["username"] for user in users} == {"member", "other"}
    counts = {user["username"]: user["character_count"] for user in users}
    assert counts == {"member": 2, "other": 1}
