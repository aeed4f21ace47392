"""Event scheduling: single events, weekly series, edits and deletion.

A series is persisted one occurrence at a time. An occurrence that fails is
reported in the result and does not stop the remaining ones.

Deleting an event first reverses every attendance credit it produced (using
the stored ``credited_dkp`` snapshots) in the same transaction, so balances
never keep DKP from an event that no longer exists.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from dkp_server.api.permissions import Principal
from dkp_server.audit import AuditJournal, actor_payload
from dkp_server.db import attendance_repo, events_repo
from dkp_server.db.connection import Database
from dkp_server.db.errors import DatabaseError
from dkp_server.db.timestamps import as_utc, from_db_timestamp, to_db_timestamp, utc_now
from dkp_server.services import recurrence
from dkp_server.services.attendance import require_event, reverse_attendance
from dkp_server.services.errors import InvalidArgumentError
from dkp_server.services.ledger import DkpLedger

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000


@dataclass(slots=True)
class OccurrenceFailure:
    index: int
    title: str
    start_time: datetime
    message: str


@dataclass(slots=True)
class EventSeriesResult:
    created: list[dict[str, Any]] = field(default_factory=list)
    failures: list[OccurrenceFailure] = field(default_factory=list)


@dataclass(slots=True)
class EventDeletion:
    event: dict[str, Any]
    removed_attendances: int
    reversed_dkp: int


def _check_text(title: str | None, description: str | None) -> None:
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        raise InvalidArgumentError(
            f"Title must be {MAX_TITLE_LENGTH} characters or less", reason="invalid_title"
        )
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise InvalidArgumentError(
            f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less",
            reason="invalid_description",
        )


class EventScheduler:
    """Creates, edits and deletes events."""

    def __init__(self, db: Database, ledger: DkpLedger, journal: AuditJournal | None = None) -> None:
        self.db = db
        self.ledger = ledger
        self.journal = journal

    def _insert(self, definition: recurrence.EventDefinition | recurrence.EventTemplate) -> dict[str, Any]:
        with self.db.connection_scope(write=True) as conn:
            event_id = events_repo.create_event(
                conn,
                definition.title,
                to_db_timestamp(definition.start_time),
                to_db_timestamp(definition.end_time),
                definition.dkp_reward,
                description=definition.description,
            )
            return require_event(conn, event_id)

    def create_event(self, template: recurrence.EventTemplate) -> dict[str, Any]:
        """Create one event.

        Raises:
            InvalidArgumentError: Invalid title, description, times or reward.
        """
        template = _normalized(template)
        recurrence.validate_template(template)
        _check_text(template.title, template.description)
        event = self._insert(template)
        logger.info("Event created: id=%s title=%r", event["id"], event["title"])
        return event

    def create_series(
        self, template: recurrence.EventTemplate, rule: recurrence.RecurrenceRule
    ) -> EventSeriesResult:
        """Generate and persist a weekly series, one transaction per occurrence.

        Raises:
            InvalidArgumentError: Invalid template or rule (nothing is created).
        """
        template = _normalized(template)
        _check_text(template.title, template.description)
        definitions = recurrence.generate(template, rule)

        result = EventSeriesResult()
        for index, definition in enumerate(definitions):
            try:
                result.created.append(self._insert(definition))
            except (DatabaseError, sqlite3.IntegrityError) as exc:
                logger.warning("Series occurrence %s (%r) was not created: %s", index, definition.title, exc)
                result.failures.append(
                    OccurrenceFailure(
                        index=index,
                        title=definition.title,
                        start_time=definition.start_time,
                        message=str(exc),
                    )
                )
        logger.info(
            "Event series %r: %s created, %s failed", template.title, len(result.created), len(result.failures)
        )
        return result

    def get_event(self, event_id: int) -> dict[str, Any]:
        with self.db.connection_scope() as conn:
            return require_event(conn, event_id)

    def list_events(
        self,
        *,
        start_from: datetime | None = None,
        start_until: datetime | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        with self.db.connection_scope() as conn:
            return events_repo.list_events(
                conn,
                start_from=to_db_timestamp(start_from) if start_from else None,
                start_until=to_db_timestamp(start_until) if start_until else None,
                search=search,
                limit=limit,
                offset=offset,
            )

    def upcoming_events(self, *, days: int = 7, limit: int = 10) -> list[dict[str, Any]]:
        """Events starting within the next ``days`` days."""
        now = utc_now()
        with self.db.connection_scope() as conn:
            return events_repo.list_upcoming_events(
                conn, to_db_timestamp(now), to_db_timestamp(now + timedelta(days=days)), limit=limit
            )

    def update_event(self, event_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update.

        Changing ``dkp_reward`` affects future attendances only; recorded
        attendances keep the amount they were credited.

        Raises:
            NotFoundError: Unknown event.
            InvalidArgumentError: Invalid values or resulting time range.
        """
        fields: dict[str, Any] = {}
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise InvalidArgumentError("Title cannot be empty", reason="invalid_title")
            fields["title"] = title
        if "description" in changes:
            description = changes["description"]
            fields["description"] = (description.strip() or None) if description else None
        if "dkp_reward" in changes:
            reward = changes["dkp_reward"]
            if reward is None or reward < 0:
                raise InvalidArgumentError("DKP reward must be a non-negative number", reason="invalid_reward")
            fields["dkp_reward"] = reward
        _check_text(fields.get("title"), fields.get("description"))

        with self.db.connection_scope(write=True) as conn:
            existing = require_event(conn, event_id)
            start = as_utc(changes.get("start_time") or from_db_timestamp(existing["start_time"]))
            end = as_utc(changes.get("end_time") or from_db_timestamp(existing["end_time"]))
            if start >= end:
                raise InvalidArgumentError("Start time must be before end time", reason="invalid_time_range")
            if changes.get("start_time"):
                fields["start_time"] = to_db_timestamp(start)
            if changes.get("end_time"):
                fields["end_time"] = to_db_timestamp(end)
            events_repo.update_event(conn, event_id, fields)
            event = require_event(conn, event_id)
        logger.info("Event updated: id=%s fields=%s", event_id, sorted(fields))
        return event

    def delete_event(self, event_id: int, *, actor: Principal | None = None) -> EventDeletion:
        """Delete an event after reversing all of its attendance credits.

        Raises:
            NotFoundError: Unknown event.
            ConflictError: A reversal would make some balance negative; nothing
                is deleted.
        """
        actor_id = actor.user_id if actor else None
        with self.db.connection_scope(write=True) as conn:
            event = require_event(conn, event_id)
            attendances = attendance_repo.list_for_event(conn, event_id)
            reversed_dkp = 0
            for attendance in attendances:
                reverse_attendance(
                    self.ledger, conn, attendance, actor_user_id=actor_id, note="event deleted"
                )
                reversed_dkp += int(attendance["credited_dkp"])
            events_repo.delete_event(conn, event_id)

        logger.info(
            "Event deleted: id=%s attendances=%s reversed=%s", event_id, len(attendances), reversed_dkp
        )
        if self.journal is not None:
            self.journal.record(
                "event.deleted",
                {
                    "event_id": event_id,
                    "title": event["title"],
                    "removed_attendances": len(attendances),
                    "reversed_dkp": reversed_dkp,
                },
                actor=actor_payload(actor),
            )
        return EventDeletion(event=event, removed_attendances=len(attendances), reversed_dkp=reversed_dkp)

    def event_stats(self) -> dict[str, Any]:
        with self.db.connection_scope() as conn:
            return events_repo.event_stats(conn, to_db_timestamp(utc_now()))


def _normalized(template: recurrence.EventTemplate) -> recurrence.EventTemplate:
    """Strip title and description whitespace and convert both times to UTC.

    Blank descriptions become None. Naive times are taken as UTC.
    """
    description = template.description.strip() if template.description else None
    return recurrence.EventTemplate(
        title=(template.title or "").strip(),
        start_time=as_utc(template.start_time),
        end_time=as_utc(template.end_time),
        dkp_reward=template.dkp_reward,
        description=description or None,
    )
