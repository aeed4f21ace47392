"""Unit tests for the audit journal module.

Each test builds its own :class:`~dkp_server.audit.AuditJournal` under
pytest's ``tmp_path`` so no test touches the real ``data/audit/`` directory.

Test organisation
-----------------
- :class:`TestAppend`       happy path and argument validation for ``append``.
- :class:`TestEnvelope`     envelope fields, types and values.
- :class:`TestRecord`       best-effort writes and the disabled switch.
- :class:`TestReadRecent`   ordering, limits and action filtering.
- :class:`TestVerify`       ok, empty and corrupt branches.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from dkp_server.audit import AuditJournal, AuditVerifyResult, AuditWriteError, actor_payload


@pytest.fixture
def journal_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "guild.jsonl"


@pytest.fixture
def journal(journal_path: Path) -> AuditJournal:
    return AuditJournal(journal_path)


def _lines(path: Path) -> list[str]:
    return [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


# ── append ────────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestAppend:
    def test_creates_file_and_parents(self, journal: AuditJournal, journal_path: Path) -> None:
        assert not journal_path.exists()
        journal.append("item.deleted", {"item_id": 1})
        assert journal_path.exists()

    def test_returns_32_char_hex_entry_id(self, journal: AuditJournal) -> None:
        entry_id = journal.append("item.deleted", {"item_id": 1})
        assert len(entry_id) == 32
        int(entry_id, 16)

    def test_each_call_appends_one_line(self, journal: AuditJournal, journal_path: Path) -> None:
        first = journal.append("item.deleted", {"item_id": 1})
        second = journal.append("item.deleted", {"item_id": 2})
        assert first != second
        assert len(_lines(journal_path)) == 2
        assert journal_path.read_text(encoding="utf-8").endswith("\n")

    @pytest.mark.parametrize("action", ["", "   "])
    def test_blank_action_is_rejected(self, journal: AuditJournal, action: str) -> None:
        with pytest.raises(ValueError):
            journal.append(action, {})

    def test_unserialisable_data_raises_write_error(self, journal: AuditJournal) -> None:
        with pytest.raises(AuditWriteError):
            journal.append("item.deleted", {"bad": object()})

    def test_unwritable_path_raises_write_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(AuditWriteError):
            AuditJournal(blocker / "guild.jsonl").append("item.deleted", {})


# ── envelope ──────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestEnvelope:
    @pytest.fixture
    def envelope(self, journal: AuditJournal, journal_path: Path) -> dict:
        actor = {"user_id": 1, "username": "raidlead", "role": "ADMIN"}
        journal.append("user.role_changed", {"user_id": 7, "new_role": "OFFICER"}, actor=actor)
        return json.loads(_lines(journal_path)[0])

    def test_has_expected_fields(self, envelope: dict) -> None:
        assert set(envelope) == {"entry_id", "timestamp", "action", "schema_version", "actor", "data", "_checksum"}

    def test_values(self, envelope: dict) -> None:
        assert envelope["action"] == "user.role_changed"
        assert envelope["schema_version"] == "1.0"
        assert envelope["actor"]["username"] == "raidlead"
        assert envelope["data"] == {"user_id": 7, "new_role": "OFFICER"}
        assert envelope["timestamp"].endswith("+00:00")

    def test_checksum_covers_body(self, envelope: dict) -> None:
        body = {k: v for k, v in envelope.items() if k != "_checksum"}
        canonical = json.dumps(body, ensure_ascii=False, sort_keys=True)
        expected = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        assert envelope["_checksum"] == f"sha256:{expected}"


# ── record ────────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestRecord:
    def test_disabled_journal_writes_nothing(self, journal_path: Path) -> None:
        journal = AuditJournal(journal_path, enabled=False)
        assert journal.record("item.deleted", {}) is None
        assert not journal_path.exists()

    def test_failure_is_logged_not_raised(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x", encoding="utf-8")
        journal = AuditJournal(blocker / "guild.jsonl")

        with caplog.at_level("WARNING", logger="dkp_server.audit.journal"):
            assert journal.record("item.deleted", {}) is None
        assert "Audit journal write failed" in caplog.text

    def test_actor_payload(self) -> None:
        principal = SimpleNamespace(user_id=3, username="officer", role="OFFICER")
        assert actor_payload(principal) == {"user_id": 3, "username": "officer", "role": "OFFICER"}
        assert actor_payload(None) is None


# ── read_recent ───────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestReadRecent:
    def test_missing_file_is_empty(self, journal: AuditJournal) -> None:
        assert journal.read_recent() == []

    def test_newest_first_with_limit(self, journal: AuditJournal) -> None:
        for item_id in range(5):
            journal.append("item.deleted", {"item_id": item_id})
        entries = journal.read_recent(limit=2)
        assert [entry["data"]["item_id"] for entry in entries] == [4, 3]

    def test_filters_by_action_and_skips_garbage(self, journal: AuditJournal, journal_path: Path) -> None:
        journal.append("item.deleted", {"item_id": 1})
        with journal_path.open("a", encoding="utf-8") as fh:
            fh.write("{not json\n")
        journal.append("event.deleted", {"event_id": 2})

        assert [entry["action"] for entry in journal.read_recent()] == ["event.deleted", "item.deleted"]
        assert [entry["data"] for entry in journal.read_recent(action="item.deleted")] == [{"item_id": 1}]


# ── verify ────────────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestVerify:
    def test_empty_when_absent_or_blank(self, journal: AuditJournal, journal_path: Path) -> None:
        assert journal.verify().status == "empty"
        journal_path.parent.mkdir(parents=True)
        journal_path.write_text("\n\n", encoding="utf-8")
        assert journal.verify().status == "empty"

    def test_ok_reports_last_entry(self, journal: AuditJournal) -> None:
        journal.append("item.deleted", {"item_id": 1})
        last = journal.append("item.deleted", {"item_id": 2})
        result = journal.verify()
        assert result == AuditVerifyResult(status="ok", last_entry_id=last, error_detail=None)

    def test_corrupt_on_invalid_json(self, journal: AuditJournal, journal_path: Path) -> None:
        journal.append("item.deleted", {"item_id": 1})
        with journal_path.open("a", encoding="utf-8") as fh:
            fh.write("{truncated\n")
        result = journal.verify()
        assert result.status == "corrupt"
        assert "not valid JSON" in result.error_detail

    def test_corrupt_on_tampered_data(self, journal: AuditJournal, journal_path: Path) -> None:
        journal.append("dkp.manual_adjustment", {"delta": 5})
        envelope = json.loads(_lines(journal_path)[0])
        envelope["data"]["delta"] = 500
        journal_path.write_text(json.dumps(envelope) + "\n", encoding="utf-8")

        result = journal.verify()
        assert result.status == "corrupt"
        assert "Checksum mismatch" in result.error_detail

    def test_corrupt_on_non_object(self, journal: AuditJournal, journal_path: Path) -> None:
        journal_path.parent.mkdir(parents=True)
        journal_path.write_text("[1, 2]\n", encoding="utf-8")
        assert journal.verify().status == "corrupt"

    def test_result_is_frozen(self, journal: AuditJournal) -> None:
        result = journal.verify()
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.status = "ok"  # type: ignore[misc]
