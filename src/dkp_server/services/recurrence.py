"""Weekly recurrence expansion for guild events.

``generate`` is pure: it turns one event template plus a weekly rule into a
list of unsaved event definitions. Persisting them is the event scheduler's
job.

Day numbering follows the guild calendar convention 0=Sunday .. 6=Saturday,
which differs from ``datetime.weekday()`` (0=Monday).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from dkp_server.db.constants import SQLITE_MAX_INTEGER
from dkp_server.services.errors import InvalidArgumentError

MIN_INTERVAL_WEEKS = 1
MAX_INTERVAL_WEEKS = 4
MIN_OCCURRENCES = 1
MAX_OCCURRENCES = 52


@dataclass(frozen=True, slots=True)
class EventTemplate:
    title: str
    start_time: datetime
    end_time: datetime
    dkp_reward: int = 0
    description: str | None = None


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """Weekly repetition.

    Attributes:
        interval: Weeks between occurrences (1-4).
        day_of_week: 0=Sunday .. 6=Saturday.
        occurrences: Number of events to produce (1-52).
    """

    interval: int
    day_of_week: int
    occurrences: int


@dataclass(frozen=True, slots=True)
class EventDefinition:
    title: str
    start_time: datetime
    end_time: datetime
    dkp_reward: int
    description: str | None = None


def sunday_based_weekday(value: datetime) -> int:
    """Return the weekday of ``value`` with 0=Sunday."""
    return (value.weekday() + 1) % 7


def validate_template(template: EventTemplate) -> None:
    """Raise InvalidArgumentError unless the template describes a real event."""
    if not template.title or not template.title.strip():
        raise InvalidArgumentError("Event title is required", reason="invalid_title")
    if (template.start_time.tzinfo is None) != (template.end_time.tzinfo is None):
        raise InvalidArgumentError(
            "Start and end time must both carry a UTC offset or both omit it",
            reason="invalid_time_range",
        )
    if template.end_time <= template.start_time:
        raise InvalidArgumentError("End time must be after start time", reason="invalid_time_range")
    if not 0 <= template.dkp_reward <= SQLITE_MAX_INTEGER:
        raise InvalidArgumentError("DKP reward must be a non-negative integer", reason="invalid_reward")


def validate_rule(rule: RecurrenceRule) -> None:
    """Raise InvalidArgumentError for out-of-range rule fields."""
    if not MIN_INTERVAL_WEEKS <= rule.interval <= MAX_INTERVAL_WEEKS:
        raise InvalidArgumentError(
            f"Interval must be between {MIN_INTERVAL_WEEKS} and {MAX_INTERVAL_WEEKS} weeks",
            reason="invalid_interval",
        )
    if not 0 <= rule.day_of_week <= 6:
        raise InvalidArgumentError(
            "Day of week must be between 0 (Sunday) and 6 (Saturday)",
            reason="invalid_day_of_week",
        )
    if not MIN_OCCURRENCES <= rule.occurrences <= MAX_OCCURRENCES:
        raise InvalidArgumentError(
            f"Occurrences must be between {MIN_OCCURRENCES} and {MAX_OCCURRENCES}",
            reason="invalid_occurrences",
        )


def occurrence_title(title: str, index: int) -> str:
    """Title of the ``index``-th occurrence (0-based)."""
    if index == 0:
        return title
    return f"{title} (Week {index + 1})"


def generate(template: EventTemplate, rule: RecurrenceRule) -> list[EventDefinition]:
    """Expand ``template`` into ``rule.occurrences`` weekly definitions.

    The first occurrence is the template start moved forward by 0-6 days to
    the first date falling on ``rule.day_of_week``; the time of day is kept.
    Each later occurrence is ``interval * 7`` days after the previous one and
    every occurrence keeps the template's duration.

    Raises:
        InvalidArgumentError: Invalid template or rule.
    """
    validate_template(template)
    validate_rule(rule)

    duration = template.end_time - template.start_time
    shift = (rule.day_of_week - sunday_based_weekday(template.start_time)) % 7
    first_start = template.start_time + timedelta(days=shift)
    step = timedelta(weeks=rule.interval)

    definitions = []
    for index in range(rule.occurrences):
        start = first_start + step * index
        definitions.append(
            EventDefinition(
                title=occurrence_title(template.title, index),
                start_time=start,
                end_time=start + duration,
                dkp_reward=template.dkp_reward,
                description=template.description,
            )
        )
    return definitions
