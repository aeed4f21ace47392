"""
API endpoint tests for the guild routers (dkp_server/api/routes/).

Tests cover:
- Character CRUD, ownership and manual DKP adjustment
- Event creation (single and weekly series), edits and deletion
- Attendance recording, removal and bulk recording
- Item catalogue, wishes and ranking
- Error envelope mapping (404/409/400)

Uses TestClient against an engine bound to a temporary database.
"""

import pytest

# ============================================================================
# CHARACTERS
# ============================================================================


@pytest.mark.api
def test_create_character_for_caller(test_client, auth_headers, guild_users):
    response = test_client.post(
        "/characters",
        json={"name": "Lyra", "role": "DPS", "weapon1": "Bow"},
        headers=auth_headers["member"],
    )

    assert response.status_code == 201
    data = response.json()
    assert data["user_id"] == guild_users["member"].user_id
    assert data["dkp"] == 0
    assert data["active"] == "ACTIVE"


@pytest.mark.api
def test_duplicate_character_name_is_409(test_client, auth_headers, characters):
    response = test_client.post("/characters", json={"name": "Aria"}, headers=auth_headers["other"])

    assert response.status_code == 409
    assert set(response.json()) == {"error", "reason"}
    assert response.json()["reason"] == "character_exists"


@pytest.mark.api
def test_unknown_character_is_404_envelope(test_client, auth_headers):
    response = test_client.get("/characters/9999", headers=auth_headers["member"])

    assert response.status_code == 404
    assert response.json()["reason"] == "character_not_found"
    assert "9999" in response.json()["error"]


@pytest.mark.api
@pytest.mark.auth
def test_member_update_of_foreign_character_is_404(test_client, auth_headers, characters):
    response = test_client.put(
        f"/characters/{characters['Cyra']['id']}",
        json={"weapon1": "Axe"},
        headers=auth_headers["member"],
    )
    assert response.status_code == 404


@pytest.mark.api
def test_list_characters_filters_by_owner(test_client, auth_headers, characters, guild_users):
    response = test_client.get(
        "/characters",
        params={"user_id": guild_users["member"].user_id},
        headers=auth_headers["member"],
    )

    assert response.status_code == 200
    assert [c["name"] for c in response.json()["characters"]] == ["Aria", "Borin"]


@pytest.mark.api
def test_officer_adjusts_dkp_and_reads_ledger(test_client, auth_headers, characters):
    aria_id = characters["Aria"]["id"]

    response = test_client.post(
        f"/characters/{aria_id}/dkp",
        json={"amount": 40, "note": "server first"},
        headers=auth_headers["officer"],
    )
    assert response.status_code == 200
    assert response.json()["balance_after"] == 40

    overdraw = test_client.post(
        f"/characters/{aria_id}/dkp", json={"amount": -41}, headers=auth_headers["officer"]
    )
    assert overdraw.status_code == 400
    assert overdraw.json()["reason"] == "insufficient_balance"

    ledger = test_client.get(f"/characters/{aria_id}/ledger", headers=auth_headers["member"])
    assert [row["delta"] for row in ledger.json()["transactions"]] == [40]


@pytest.mark.api
@pytest.mark.auth
def test_member_cannot_adjust_dkp(test_client, auth_headers, characters):
    response = test_client.post(
        f"/characters/{characters['Aria']['id']}/dkp", json={"amount": 10}, headers=auth_headers["member"]
    )
    assert response.status_code == 403


# ============================================================================
# EVENTS
# ============================================================================


@pytest.mark.api
def test_create_single_event(test_client, auth_headers):
    response = test_client.post(
        "/events",
        json={
            "title": "Raid Night",
            "start_time": "2025-10-07T19:00:00Z",
            "end_time": "2025-10-07T22:00:00Z",
            "dkp_reward": 50,
        },
        headers=auth_headers["member"],
    )

    assert response.status_code == 201
    [event] = response.json()["events"]
    assert event["title"] == "Raid Night"
    assert event["start_time"] == "2025-10-07T19:00:00+00:00"


@pytest.mark.api
def test_create_weekly_series(test_client, auth_headers):
    response = test_client.post(
        "/events",
        json={
            "title": "Raid",
            "start_time": "2025-10-06T19:00:00Z",
            "end_time": "2025-10-06T22:00:00Z",
            "dkp_reward": 50,
            "recurrence": {"type": "weekly", "interval": 1, "day_of_week": 2, "occurrences": 3},
        },
        headers=auth_headers["officer"],
    )

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Created 3 recurring events"
    assert data["failures"] == []
    assert [e["start_time"][:10] for e in data["events"]] == ["2025-10-07", "2025-10-14", "2025-10-21"]
    assert [e["title"] for e in data["events"]] == ["Raid", "Raid (Week 2)", "Raid (Week 3)"]


@pytest.mark.api
def test_event_with_inverted_times_is_400(test_client, auth_headers):
    response = test_client.post(
        "/events",
        json={"title": "Oops", "start_time": "2025-10-07T22:00:00Z", "end_time": "2025-10-07T19:00:00Z"},
        headers=auth_headers["member"],
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_time_range"


@pytest.mark.api
def test_event_series_with_bad_rule_is_400(test_client, auth_headers):
    response = test_client.post(
        "/events",
        json={
            "title": "Raid",
            "start_time": "2025-10-06T19:00:00Z",
            "end_time": "2025-10-06T22:00:00Z",
            "recurrence": {"interval": 1, "day_of_week": 2, "occurrences": 60},
        },
        headers=auth_headers["officer"],
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_occurrences"


@pytest.mark.api
def test_update_and_delete_event(test_client, auth_headers, make_event, characters, engine):
    event = make_event(reward=30)
    engine.attendance.record_attendance(event["id"], characters["Aria"]["id"])

    updated = test_client.put(f"/events/{event['id']}", json={"dkp_reward": 45}, headers=auth_headers["officer"])
    assert updated.status_code == 200
    assert updated.json()["dkp_reward"] == 45

    deleted = test_client.delete(f"/events/{event['id']}", headers=auth_headers["officer"])
    assert deleted.status_code == 200
    assert deleted.json()["removed_attendances"] == 1
    assert deleted.json()["reversed_dkp"] == 30
    assert engine.characters.get_character(characters["Aria"]["id"])["dkp"] == 0

    assert test_client.get(f"/events/{event['id']}", headers=auth_headers["officer"]).status_code == 404


@pytest.mark.api
def test_event_stats_require_officer(test_client, auth_headers, make_event):
    make_event()
    assert test_client.get("/events/stats", headers=auth_headers["member"]).status_code == 403
    response = test_client.get("/events/stats", headers=auth_headers["officer"])
    assert response.status_code == 200
    assert response.json()["total_events"] == 1


# ============================================================================
# ATTENDANCE
# ============================================================================


@pytest.mark.api
def test_record_and_remove_attendance(test_client, auth_headers, make_event, characters):
    event = make_event(reward=50)
    aria_id = characters["Aria"]["id"]

    created = test_client.post(
        "/attendance",
        json={"event_id": event["id"], "character_id": aria_id},
        headers=auth_headers["member"],
    )
    assert created.status_code == 201
    assert created.json()["balance_after"] == 50

    duplicate = test_client.post(
        "/attendance",
        json={"event_id": event["id"], "character_id": aria_id},
        headers=auth_headers["member"],
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["reason"] == "already_attended"

    listing = test_client.get(f"/attendance/event/{event['id']}", headers=auth_headers["member"])
    assert listing.json()["total"] == 1

    removed = test_client.delete(f"/attendance/{event['id']}/{aria_id}", headers=auth_headers["member"])
    assert removed.status_code == 200
    assert removed.json() == {
        "event_id": event["id"],
        "character_id": aria_id,
        "reversed_amount": 50,
        "balance_after": 0,
    }


@pytest.mark.api
def test_bulk_attendance_reports_per_id_outcomes(test_client, auth_headers, make_event, characters):
    event = make_event(reward=50)
    response = test_client.post(
        "/attendance/bulk",
        json={
            "event_id": event["id"],
            "character_ids": [characters["Aria"]["id"], characters["Borin"]["id"], 9999, "abc"],
        },
        headers=auth_headers["officer"],
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success_count"] == 2
    assert data["failure_count"] == 2
    assert data["total_credited"] == 100
    assert [f["reason"] for f in data["failures"]] == ["character_not_found", "invalid_character_id"]


@pytest.mark.api
def test_bulk_attendance_unknown_event_is_404(test_client, auth_headers, characters):
    response = test_client.post(
        "/attendance/bulk",
        json={"event_id": 9999, "character_ids": [characters["Aria"]["id"]]},
        headers=auth_headers["admin"],
    )
    assert response.status_code == 404
    assert response.json()["reason"] == "event_not_found"


@pytest.mark.api
def test_attendance_stats(test_client, auth_headers, make_event, characters, engine):
    event = make_event(reward=10)
    engine.attendance.record_attendance(event["id"], characters["Aria"]["id"])

    response = test_client.get("/attendance/stats", headers=auth_headers["officer"])
    assert response.status_code == 200
    assert response.json()["total_attendances"] == 1
    assert response.json()["top_attenders"][0]["character_name"] == "Aria"


# ============================================================================
# ITEMS AND WISHES
# ============================================================================


@pytest.mark.api
def test_item_catalogue_permissions(test_client, auth_headers):
    denied = test_client.post("/items", json={"name": "Crown"}, headers=auth_headers["officer"])
    assert denied.status_code == 403

    created = test_client.post("/items", json={"name": "Crown", "min_dkp_cost": 25}, headers=auth_headers["admin"])
    assert created.status_code == 201
    assert created.json()["min_dkp_cost"] == 25

    listing = test_client.get("/items", headers=auth_headers["member"])
    assert listing.json()["total"] == 1


@pytest.mark.api
def test_wish_and_ranking_flow(test_client, auth_headers, characters, engine):
    item = engine.items.create_item("Crown", min_dkp_cost=25)
    engine.ledger.adjust(characters["Borin"]["id"], 30)

    for name in ("Aria", "Borin"):
        response = test_client.post(
            "/wishes",
            json={"character_id": characters[name]["id"], "item_id": item["id"]},
            headers=auth_headers["member"],
        )
        assert response.status_code == 201

    ranking = test_client.get(f"/items/{item['id']}/ranking", headers=auth_headers["member"])
    assert ranking.status_code == 200
    data = ranking.json()
    assert [w["character_name"] for w in data["wishers"]] == ["Borin", "Aria"]
    assert [w["eligible"] for w in data["wishers"]] == [True, False]
    assert data["eligible_count"] == 1


@pytest.mark.api
@pytest.mark.auth
def test_member_cannot_wish_for_foreign_character(test_client, auth_headers, characters, engine):
    item = engine.items.create_item("Crown")
    response = test_client.post(
        "/wishes",
        json={"character_id": characters["Cyra"]["id"], "item_id": item["id"]},
        headers=auth_headers["member"],
    )
    assert response.status_code == 404


@pytest.mark.api
def test_remove_and_clear_wishes(test_client, auth_headers, characters, engine):
    aria_id = characters["Aria"]["id"]
    crown = engine.items.create_item("Crown")
    ring = engine.items.create_item("Ring")
    engine.wishes.add_wish(aria_id, crown["id"])
    engine.wishes.add_wish(aria_id, ring["id"])

    removed = test_client.delete(f"/wishes/{aria_id}/{crown['id']}", headers=auth_headers["member"])
    assert removed.status_code == 200

    cleared = test_client.delete(f"/wishes/character/{aria_id}", headers=auth_headers["member"])
    assert cleared.json()["removed"] == 1

    missing = test_client.delete(f"/wishes/{aria_id}/{crown['id']}", headers=auth_headers["member"])
    assert missing.status_code == 404
    assert missing.json()["reason"] == "wish_not_found"


@pytest.mark.api
def test_item_delete_with_wishes_needs_force(test_client, auth_headers, characters, engine):
    item = engine.items.create_item("Crown")
    engine.wishes.add_wish(characters["Aria"]["id"], item["id"])

    refused = test_client.delete(f"/items/{item['id']}", headers=auth_headers["officer"])
    assert refused.status_code == 409
    assert refused.json()["reason"] == "item_has_wishes"

    assert test_client.delete(f"/items/{item['id']}/force", headers=auth_headers["officer"]).status_code == 403

    forced = test_client.delete(f"/items/{item['id']}/force", headers=auth_headers["admin"])
    assert forced.status_code == 200
    assert forced.json()["wishes_removed"] == 1


# ============================================================================
# LISTINGS
# ============================================================================


@pytest.mark.api
@pytest.mark.auth
def test_attendance_listing_restricts_members_to_own_characters(
    test_client, auth_headers, make_event, characters, guild_users, engine
):
    event = make_event(reward=10)
    for name in ("Aria", "Cyra"):
        engine.attendance.record_attendance(event["id"], characters[name]["id"])

    mine = test_client.get(
        "/attendance",
        params={"user_id": guild_users["other"].user_id},
        headers=auth_headers["member"],
    )
    assert mine.status_code == 200
    assert [row["character_name"] for row in mine.json()["attendances"]] == ["Aria"]

    everyone = test_client.get("/attendance", params={"event_id": event["id"]}, headers=auth_headers["officer"])
    data = everyone.json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert data["total_pages"] == 1
    assert {row["character_name"] for row in data["attendances"]} == {"Aria", "Cyra"}

    bad_sort = test_client.get("/attendance", params={"sort_by": "dkp"}, headers=auth_headers["officer"])
    assert bad_sort.status_code == 400
    assert bad_sort.json()["reason"] == "invalid_argument"


@pytest.mark.api
def test_wish_listing_and_item_wishers(test_client, auth_headers, characters, engine):
    crown = engine.items.create_item("Crown", min_dkp_cost=20)
    engine.ledger.adjust(characters["Borin"]["id"], 30)
    for name in ("Aria", "Borin", "Cyra"):
        engine.wishes.add_wish(characters[name]["id"], crown["id"])

    mine = test_client.get("/wishes", headers=auth_headers["member"])
    assert mine.status_code == 200
    assert [row["character_name"] for row in mine.json()["wishes"]] == ["Aria", "Borin"]
    assert [row["can_afford"] for row in mine.json()["wishes"]] == [False, True]

    wishers = test_client.get(f"/wishes/item/{crown['id']}", headers=auth_headers["member"])
    assert wishers.status_code == 200
    data = wishers.json()
    assert data["item"]["name"] == "Crown"
    assert data["total_wishes"] == 3
    assert data["eligible_wishes"] == 1
    assert data["wishes"][0]["character_name"] == "Borin"

    missing = test_client.get("/wishes/item/9999", headers=auth_headers["member"])
    assert missing.status_code == 404


# ============================================================================
# INPUT BOUNDS
# ============================================================================


@pytest.mark.api
def test_bulk_attendance_reports_unstorable_id_per_item(test_client, auth_headers, make_event, characters):
    event = make_event(reward=50)
    response = test_client.post(
        "/attendance/bulk",
        json={"event_id": event["id"], "character_ids": [characters["Aria"]["id"], 99999999999999999999]},
        headers=auth_headers["officer"],
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success_count"] == 1
    assert [f["reason"] for f in data["failures"]] == ["invalid_character_id"]


@pytest.mark.api
def test_event_with_naive_start_and_utc_end_is_created(test_client, auth_headers):
    response = test_client.post(
        "/events",
        json={
            "title": "Raid Night",
            "start_time": "2025-10-06T19:00:00",
            "end_time": "2025-10-06T22:00:00Z",
            "dkp_reward": 50,
        },
        headers=auth_headers["officer"],
    )

    assert response.status_code == 201
    [event] = response.json()["events"]
    assert event["start_time"] == "2025-10-06T19:00:00+00:00"
    assert event["end_time"] == "2025-10-06T22:00:00+00:00"


@pytest.mark.api
def test_out_of_range_integers_are_400(test_client, auth_headers, characters):
    aria_id = characters["Aria"]["id"]

    amount = test_client.post(f"/characters/{aria_id}/dkp", json={"amount": 2**63}, headers=auth_headers["officer"])
    assert amount.status_code == 400
    assert amount.json()["reason"] == "invalid_argument"

    path_id = test_client.get("/characters/99999999999999999999", headers=auth_headers["member"])
    assert path_id.status_code == 400
    assert path_id.json()["reason"] == "invalid_argument"

    reward = test_client.post(
        "/events",
        json={
            "title": "Raid Night",
            "start_time": "2025-10-06T19:00:00Z",
            "end_time": "2025-10-06T22:00:00Z",
            "dkp_reward": -1,
        },
        headers=auth_headers["officer"],
    )
    assert reward.status_code == 400
