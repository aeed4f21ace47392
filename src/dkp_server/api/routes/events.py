"""Event endpoints: scheduling, weekly series, edits, deletion and stats."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency, require_minimum_role
from dkp_server.api.models import (
    EventCreateRequest,
    EventCreateResponse,
    EventDeleteResponse,
    EventListResponse,
    EventResponse,
    EventUpdateRequest,
    PathId,
)
from dkp_server.api.permissions import Principal, Role
from dkp_server.core.engine import GuildEngine
from dkp_server.db.constants import SQLITE_MAX_INTEGER
from dkp_server.services.recurrence import EventTemplate, RecurrenceRule


def router(engine: GuildEngine) -> APIRouter:
    """Build the event router."""
    api = APIRouter(prefix="/events", tags=["events"])
    current_principal = principal_dependency(engine)
    officer = require_minimum_role(current_principal, Role.OFFICER)

    @api.get("", response_model=EventListResponse)
    def list_events(
        start_from: datetime | None = None,
        start_until: datetime | None = None,
        search: str | None = None,
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0, le=SQLITE_MAX_INTEGER),
        principal: Principal = Depends(current_principal),
    ):
        events, total = engine.events.list_events(
            start_from=start_from, start_until=start_until, search=search, limit=limit, offset=offset
        )
        return EventListResponse(events=events, total=total, limit=limit, offset=offset)

    @api.post("", response_model=EventCreateResponse, status_code=201)
    def create_event(request: EventCreateRequest, principal: Principal = Depends(current_principal)):
        """Create one event, or a weekly series when ``recurrence`` is given.

        A series is created occurrence by occurrence; occurrences that could
        not be stored are listed in ``failures``.
        """
        template = EventTemplate(
            title=request.title,
            description=request.description,
            start_time=request.start_time,
            end_time=request.end_time,
            dkp_reward=request.dkp_reward,
        )
        if request.recurrence is None:
            event = engine.events.create_event(template)
            return EventCreateResponse(message="Event created successfully", events=[event])

        rule = RecurrenceRule(
            interval=request.recurrence.interval,
            day_of_week=request.recurrence.day_of_week,
            occurrences=request.recurrence.occurrences,
        )
        result = engine.events.create_series(template, rule)
        return EventCreateResponse(
            message=f"Created {len(result.created)} recurring events",
            events=result.created,
            failures=[
                {
                    "index": failure.index,
                    "title": failure.title,
                    "start_time": failure.start_time,
                    "message": failure.message,
                }
                for failure in result.failures
            ],
        )

    # Registered before "/{event_id}" so the literal paths win.
    @api.get("/upcoming", response_model=list[EventResponse])
    def upcoming_events(
        days: int = Query(default=7, ge=1, le=90),
        limit: int = Query(default=10, ge=1, le=100),
        principal: Principal = Depends(current_principal),
    ):
        """Events starting within the next ``days`` days."""
        return engine.events.upcoming_events(days=days, limit=limit)

    @api.get("/stats")
    def event_stats(principal: Principal = Depends(officer)):
        """Event totals (Officer or Admin)."""
        return engine.events.event_stats()

    @api.get("/{event_id}", response_model=EventResponse)
    def get_event(event_id: PathId, principal: Principal = Depends(current_principal)):
        return engine.events.get_event(event_id)

    @api.put("/{event_id}", response_model=EventResponse)
    def update_event(
        event_id: PathId,
        request: EventUpdateRequest,
        principal: Principal = Depends(current_principal),
    ):
        """Partially update an event. Recorded attendances keep their credit."""
        return engine.events.update_event(event_id, request.model_dump(exclude_unset=True))

    @api.delete("/{event_id}", response_model=EventDeleteResponse)
    def delete_event(event_id: PathId, principal: Principal = Depends(current_principal)):
        """Delete an event, reversing the DKP its attendances credited."""
        deletion = engine.events.delete_event(event_id, actor=principal)
        return EventDeleteResponse(
            message="Event deleted successfully",
            deleted_event=deletion.event,
            removed_attendances=deletion.removed_attendances,
            reversed_dkp=deletion.reversed_dkp,
        )

    return api
