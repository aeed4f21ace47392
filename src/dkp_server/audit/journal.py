"""JSONL journal of privileged guild actions.

Overview
--------
Officers and admins change balances, roles and the item catalogue. Each such
action is appended here as one JSON line so it can be reviewed later through
``GET /admin/audit-log``. The SQLite ``dkp_transactions`` table remains the
record of balances; the journal records *who did what*.

Envelope format
---------------
.. code-block:: json

    {
      "entry_id":       "a3f91c9e2d4b5e6f...",
      "timestamp":      "2025-10-07T19:00:00.452345+00:00",
      "action":         "dkp.manual_adjustment",
      "schema_version": "1.0",
      "actor":          {"user_id": 1, "username": "raidlead", "role": "OFFICER"},
      "data":           { ... action-specific payload ... },
      "_checksum":      "sha256:b94f3e..."
    }

``_checksum`` covers every other field serialised with ``sort_keys=True``.

Action namespace
----------------
::

    attendance.bulk_recorded
    dkp.manual_adjustment
    event.deleted
    item.deleted
    item.force_deleted
    user.role_changed

Failure isolation
-----------------
:meth:`AuditJournal.record` never raises: a failed append is logged at
WARNING and the privileged action still completes. :meth:`AuditJournal.append`
is the strict variant raising :exc:`AuditWriteError`.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

# Readers reject envelopes with an unknown schema_version.
_SCHEMA_VERSION = "1.0"

# Any single entry fits comfortably in this tail window.
_TAIL_CHUNK_BYTES = 16_384


class AuditWriteError(Exception):
    """Raised when a journal append fails due to a filesystem or encoding error."""


@dataclass(frozen=True)
class AuditVerifyResult:
    """Result of :meth:`AuditJournal.verify`.

    Attributes:
        status: ``"ok"``, ``"empty"`` or ``"corrupt"``.
        last_entry_id: ``entry_id`` of the last entry when status is ``"ok"``.
        error_detail: Reason for a ``"corrupt"`` status.
    """

    status: Literal["ok", "empty", "corrupt"]
    last_entry_id: str | None
    error_detail: str | None


class AuditJournal:
    """Append-only JSONL journal stored at ``path``.

    Args:
        path: Journal file. Parent directories are created on first write.
        enabled: When False, :meth:`record` is a no-op returning ``None``.
    """

    def __init__(self, path: Path | str, *, enabled: bool = True) -> None:
        self.path = Path(path)
        self.enabled = enabled

    def append(self, action: str, data: dict[str, Any], *, actor: dict[str, Any] | None = None) -> str:
        """Append one entry and return its ``entry_id``.

        Raises:
            ValueError: ``action`` is blank.
            AuditWriteError: Serialisation or the filesystem write failed.
        """
        if not action or not action.strip():
            raise ValueError("append: action must be a non-empty string.")

        entry_id = uuid.uuid4().hex
        body: dict[str, Any] = {
            "entry_id": entry_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "action": action,
            "schema_version": _SCHEMA_VERSION,
            "actor": actor,
            "data": data,
        }
        try:
            envelope = {**body, "_checksum": f"sha256:{_compute_checksum(body)}"}
            line = json.dumps(envelope, ensure_ascii=False, sort_keys=True)
            _append_line_locked(self.path, line)
        except (OSError, TypeError, ValueError) as exc:
            raise AuditWriteError(f"Failed to write audit entry {entry_id!r} to {self.path}: {exc}") from exc

        logger.debug("audit: appended %r entry %s", action, entry_id)
        return entry_id

    def record(self, action: str, data: dict[str, Any], *, actor: dict[str, Any] | None = None) -> str | None:
        """Best-effort :meth:`append`. Returns ``None`` when disabled or on failure."""
        if not self.enabled:
            return None
        try:
            return self.append(action, data, actor=actor)
        except AuditWriteError:
            logger.warning("Audit journal write failed for %r; action continues.", action, exc_info=True)
            return None

    def read_recent(self, *, limit: int = 50, action: str | None = None) -> list[dict[str, Any]]:
        """Return up to ``limit`` entries, newest first.

        Lines that are not valid JSON objects are skipped.
        """
        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        with self.path.open("r", encoding="utf-8", errors="replace") as fh:
            for raw in fh:
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    entry = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if not isinstance(entry, dict):
                    continue
                if action and entry.get("action") != action:
                    continue
                entries.append(entry)
        entries.reverse()
        return entries[:limit]

    def verify(self) -> AuditVerifyResult:
        """Check that the last entry parses and its checksum matches."""
        if not self.path.exists():
            return AuditVerifyResult(status="empty", last_entry_id=None, error_detail=None)

        last_line = _read_last_nonempty_line(self.path)
        if last_line is None:
            return AuditVerifyResult(status="empty", last_entry_id=None, error_detail=None)

        try:
            envelope = json.loads(last_line)
        except json.JSONDecodeError as exc:
            return AuditVerifyResult(
                status="corrupt", last_entry_id=None, error_detail=f"Last line is not valid JSON: {exc}"
            )
        if not isinstance(envelope, dict):
            return AuditVerifyResult(
                status="corrupt", last_entry_id=None, error_detail="Last line is not a JSON object."
            )

        recorded = envelope.get("_checksum")
        if not isinstance(recorded, str):
            return AuditVerifyResult(
                status="corrupt", last_entry_id=None, error_detail="Last line has no '_checksum' string."
            )
        body = {k: v for k, v in envelope.items() if k != "_checksum"}
        expected = f"sha256:{_compute_checksum(body)}"
        if recorded != expected:
            return AuditVerifyResult(
                status="corrupt",
                last_entry_id=envelope.get("entry_id"),
                error_detail=f"Checksum mismatch on last entry. Recorded: {recorded!r}. Expected: {expected!r}.",
            )

        entry_id = envelope.get("entry_id")
        if not isinstance(entry_id, str) or not entry_id:
            return AuditVerifyResult(
                status="corrupt", last_entry_id=None, error_detail="Last line has no 'entry_id' string."
            )
        return AuditVerifyResult(status="ok", last_entry_id=entry_id, error_detail=None)


def actor_payload(actor: Any) -> dict[str, Any] | None:
    """Serialise a principal-like object for the ``actor`` envelope field."""
    if actor is None:
        return None
    return {"user_id": actor.user_id, "username": actor.username, "role": actor.role}


def _compute_checksum(payload: dict[str, Any]) -> str:
    canonical = json.dumps(payload, ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _append_line_locked(path: Path, line: str) -> None:
    """Append ``line`` plus a newline under an exclusive POSIX lock."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_EX)
        try:
            fh.write(line + "\n")
            fh.flush()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_last_nonempty_line(path: Path) -> str | None:
    """Return the last non-blank line, reading only the file tail."""
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            size = fh.tell()
            if size == 0:
                return None
            fh.seek(max(0, size - _TAIL_CHUNK_BYTES))
            chunk = fh.read()
    except OSError:
        return None

    for line in reversed(chunk.decode("utf-8", errors="replace").splitlines()):
        stripped = line.strip()
        if stripped:
            return stripped
    return None
