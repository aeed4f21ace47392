"""Attendance engine: records who showed up and credits DKP for it.

Each recorded attendance stores the reward it actually credited
(``credited_dkp``). Removal debits exactly that snapshot, so editing an
event's reward afterwards never skews a reversal.

Every single-pair mutation is one write transaction: the attendance row and
the balance delta (with its ledger row) commit together or not at all.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dkp_server.api.permissions import Principal, Role, authorize
from dkp_server.audit import AuditJournal, actor_payload
from dkp_server.db import attendance_repo, characters_repo, events_repo
from dkp_server.db.connection import Database
from dkp_server.db.constants import (
    REASON_ATTENDANCE_CREDIT,
    REASON_ATTENDANCE_REVERSAL,
    SQLITE_MAX_INTEGER,
)
from dkp_server.db.errors import DatabaseError
from dkp_server.db.timestamps import to_db_timestamp
from dkp_server.services.characters import require_actionable_character, require_character
from dkp_server.services.errors import ConflictError, GuildError, NotFoundError
from dkp_server.services.ledger import DkpLedger, InsufficientBalance

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AttendanceRecord:
    event_id: int
    character_id: int
    credited_amount: int
    balance_after: int


@dataclass(slots=True)
class AttendanceRemoval:
    event_id: int
    character_id: int
    reversed_amount: int
    balance_after: int


@dataclass(slots=True)
class BulkFailure:
    character_id: Any
    reason: str
    message: str


@dataclass(slots=True)
class BulkAttendanceResult:
    """Outcome of a best-effort bulk recording.

    Attributes:
        event_id: Target event.
        successes: One record per credited character.
        failures: One entry per rejected id, with a stable reason key.
    """

    event_id: int
    successes: list[AttendanceRecord] = field(default_factory=list)
    failures: list[BulkFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def total_credited(self) -> int:
        return sum(record.credited_amount for record in self.successes)


def require_event(conn: sqlite3.Connection, event_id: int) -> dict[str, Any]:
    """Load an event or raise NotFoundError."""
    event = events_repo.get_event(conn, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found", reason="event_not_found")
    return event


def reverse_attendance(
    ledger: DkpLedger,
    conn: sqlite3.Connection,
    attendance: dict[str, Any],
    *,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> int:
    """Delete one attendance row and debit its credited snapshot on ``conn``.

    Returns the new balance.

    Raises:
        ConflictError: The debit would make the balance negative.
    """
    event_id = attendance["event_id"]
    character_id = attendance["character_id"]
    amount = int(attendance["credited_dkp"])
    attendance_repo.delete_attendance(conn, event_id, character_id)
    if amount == 0:
        return characters_repo.get_dkp(conn, character_id) or 0
    try:
        change = ledger.apply_delta(
            conn,
            character_id,
            -amount,
            REASON_ATTENDANCE_REVERSAL,
            event_id=event_id,
            actor_user_id=actor_user_id,
            note=note,
        )
    except InsufficientBalance as exc:
        raise ConflictError(
            f"Removing attendance would make DKP negative for character {character_id} "
            f"(balance {exc.balance}, reversal {amount})",
            reason="insufficient_balance",
        ) from exc
    return change.balance_after


class AttendanceEngine:
    """Records and reverses attendance with atomic DKP crediting."""

    def __init__(self, db: Database, ledger: DkpLedger, journal: AuditJournal | None = None) -> None:
        self.db = db
        self.ledger = ledger
        self.journal = journal

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_attendance(
        self, event_id: int, character_id: int, *, actor: Principal | None = None
    ) -> AttendanceRecord:
        """Record one attendance and credit the event reward.

        Raises:
            NotFoundError: Unknown event, or unknown/not actionable character.
            ConflictError: The pair is already recorded.
        """
        actor_id = actor.user_id if actor else None
        return self._record(event_id, character_id, owner_check=actor, actor_user_id=actor_id)

    def _record(
        self,
        event_id: int,
        character_id: int,
        *,
        owner_check: Principal | None,
        actor_user_id: int | None,
    ) -> AttendanceRecord:
        """Insert the pair and credit the reward.

        ``owner_check`` is the principal whose ownership is enforced (None
        skips the check). ``actor_user_id`` is written to the ledger row.
        """
        try:
            with self.db.connection_scope(write=True) as conn:
                event = require_event(conn, event_id)
                require_actionable_character(conn, character_id, owner_check)
                if attendance_repo.get_attendance(conn, event_id, character_id) is not None:
                    raise ConflictError(
                        f"Character {character_id} already attended event {event_id}",
                        reason="already_attended",
                    )
                reward = int(event["dkp_reward"])
                attendance_repo.insert_attendance(conn, event_id, character_id, reward)
                if reward > 0:
                    balance_after = self.ledger.apply_delta(
                        conn,
                        character_id,
                        reward,
                        REASON_ATTENDANCE_CREDIT,
                        event_id=event_id,
                        actor_user_id=actor_user_id,
                    ).balance_after
                else:
                    balance_after = characters_repo.get_dkp(conn, character_id) or 0
        except sqlite3.IntegrityError as exc:
            # A concurrent writer inserted the same pair first.
            raise ConflictError(
                f"Character {character_id} already attended event {event_id}",
                reason="already_attended",
            ) from exc

        logger.info(
            "Attendance recorded: event=%s character=%s credited=%s balance=%s",
            event_id,
            character_id,
            reward,
            balance_after,
        )
        return AttendanceRecord(
            event_id=event_id,
            character_id=character_id,
            credited_amount=reward,
            balance_after=balance_after,
        )

    def remove_attendance(
        self, event_id: int, character_id: int, *, actor: Principal | None = None
    ) -> AttendanceRemoval:
        """Remove one attendance and debit the amount it credited.

        Raises:
            NotFoundError: The pair is not recorded, or the character is not
                actionable by ``actor``.
            ConflictError: The debit would make the balance negative.
        """
        with self.db.connection_scope(write=True) as conn:
            require_actionable_character(conn, character_id, actor)
            attendance = attendance_repo.get_attendance(conn, event_id, character_id)
            if attendance is None:
                raise NotFoundError(
                    f"No attendance for character {character_id} at event {event_id}",
                    reason="attendance_not_found",
                )
            balance_after = reverse_attendance(
                self.ledger, conn, attendance, actor_user_id=actor.user_id if actor else None
            )

        reversed_amount = int(attendance["credited_dkp"])
        logger.info(
            "Attendance removed: event=%s character=%s reversed=%s balance=%s",
            event_id,
            character_id,
            reversed_amount,
            balance_after,
        )
        return AttendanceRemoval(
            event_id=event_id,
            character_id=character_id,
            reversed_amount=reversed_amount,
            balance_after=balance_after,
        )

    def record_attendance_bulk(
        self, event_id: int, character_ids: Iterable[Any], *, actor: Principal | None = None
    ) -> BulkAttendanceResult:
        """Record attendance for many characters, one transaction each.

        Only a missing event aborts the whole call. Every other problem
        (malformed or out-of-range id, unknown character, duplicate in the
        input, already attending, a storage failure for that id) becomes a
        failure entry and processing continues. Ownership is not checked;
        the ledger rows name ``actor`` as the grantor.

        Raises:
            NotFoundError: Unknown event.
        """
        with self.db.connection_scope() as conn:
            require_event(conn, event_id)

        result = BulkAttendanceResult(event_id=event_id)
        actor_id = actor.user_id if actor else None
        seen: set[int] = set()
        for raw_id in character_ids:
            if isinstance(raw_id, bool) or not isinstance(raw_id, int) or not 0 < raw_id <= SQLITE_MAX_INTEGER:
                result.failures.append(
                    BulkFailure(raw_id, "invalid_character_id", f"Invalid character id: {raw_id!r}")
                )
                continue
            if raw_id in seen:
                result.failures.append(
                    BulkFailure(raw_id, "duplicate_in_request", "Character id listed more than once")
                )
                continue
            seen.add(raw_id)
            try:
                result.successes.append(self._record(event_id, raw_id, owner_check=None, actor_user_id=actor_id))
            except GuildError as exc:
                logger.warning(
                    "Bulk attendance skipped character %s for event %s: %s", raw_id, event_id, exc.message
                )
                result.failures.append(BulkFailure(raw_id, exc.reason, exc.message))
            except DatabaseError:
                logger.exception("Bulk attendance failed for character %s at event %s", raw_id, event_id)
                result.failures.append(BulkFailure(raw_id, "database_error", "Internal database error"))

        logger.info(
            "Bulk attendance for event %s: %s recorded, %s failed, %s DKP credited",
            event_id,
            result.success_count,
            result.failure_count,
            result.total_credited,
        )
        if self.journal is not None:
            self.journal.record(
                "attendance.bulk_recorded",
                {
                    "event_id": event_id,
                    "recorded": [record.character_id for record in result.successes],
                    "failed": [{"character_id": f.character_id, "reason": f.reason} for f in result.failures],
                    "total_credited": result.total_credited,
                },
                actor=actor_payload(actor),
            )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_attendances(
        self,
        *,
        viewer: Principal | None = None,
        event_id: int | None = None,
        character_id: int | None = None,
        user_id: int | None = None,
        sort_by: str = "event_id",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Filtered, paginated attendance listing.

        A viewer below OFFICER only sees attendances of their own characters,
        whatever ``user_id`` they asked for.
        """
        if viewer is not None and not authorize(viewer.role, Role.OFFICER):
            user_id = viewer.user_id
        with self.db.connection_scope() as conn:
            return attendance_repo.list_attendances(
                conn,
                event_id=event_id,
                character_id=character_id,
                user_id=user_id,
                sort_by=sort_by,
                descending=descending,
                limit=limit,
                offset=offset,
            )

    def list_event_attendances(self, event_id: int) -> list[dict[str, Any]]:
        """Attendances of one event. Raises NotFoundError for an unknown event."""
        with self.db.connection_scope() as conn:
            require_event(conn, event_id)
            return attendance_repo.list_for_event(conn, event_id)

    def list_character_attendances(self, character_id: int) -> dict[str, Any]:
        """Attendances of one character plus the total DKP they earned."""
        with self.db.connection_scope() as conn:
            require_character(conn, character_id)
            rows = attendance_repo.list_for_character(conn, character_id)
        return {
            "character_id": character_id,
            "attendances": rows,
            "total_dkp_earned": sum(int(row["credited_dkp"]) for row in rows),
        }

    def attendance_stats(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        character_id: int | None = None,
        user_id: int | None = None,
        top_limit: int = 10,
    ) -> dict[str, Any]:
        """Aggregate attendance figures over an optional window and filter."""
        filters = {
            "start": to_db_timestamp(start) if start else None,
            "end": to_db_timestamp(end) if end else None,
            "character_id": character_id,
            "user_id": user_id,
        }
        with self.db.connection_scope() as conn:
            totals = attendance_repo.attendance_totals(conn, **filters)
            top = attendance_repo.top_attenders(conn, limit=top_limit, **filters)
        unique_events = totals["unique_events"]
        average = round(totals["total_attendances"] / unique_events, 2) if unique_events else 0.0
        return {**totals, "average_per_event": average, "top_attenders": top}
