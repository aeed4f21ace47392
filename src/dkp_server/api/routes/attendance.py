"""Attendance endpoints.

Members record and remove attendance for their own characters; officers
and admins for anyone, plus bulk recording and statistics.
"""

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency, require_minimum_role
from dkp_server.api.models import (
    AttendanceRecordResponse,
    AttendanceRemovalResponse,
    AttendanceRequest,
    BulkAttendanceRequest,
    BulkAttendanceResponse,
    PathId,
    QueryId,
)
from dkp_server.api.permissions import Principal, Role
from dkp_server.core.engine import GuildEngine


def router(engine: GuildEngine) -> APIRouter:
    """Build the attendance router."""
    api = APIRouter(prefix="/attendance", tags=["attendance"])
    current_principal = principal_dependency(engine)
    officer = require_minimum_role(current_principal, Role.OFFICER)

    @api.get("")
    def list_attendances(
        event_id: QueryId = None,
        character_id: QueryId = None,
        user_id: QueryId = None,
        sort_by: str = Query(default="event_id", pattern="^(event_id|character_id|recorded_at)$"),
        sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
        page: int = Query(default=1, ge=1, le=1_000_000),
        limit: int = Query(default=20, ge=1, le=100),
        principal: Principal = Depends(current_principal),
    ):
        """Filtered attendance listing. Members only see their own characters."""
        attendances, total = engine.attendance.list_attendances(
            viewer=principal,
            event_id=event_id,
            character_id=character_id,
            user_id=user_id,
            sort_by=sort_by,
            descending=sort_order == "desc",
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "attendances": attendances,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }

    @api.get("/event/{event_id}")
    def event_attendances(event_id: PathId, principal: Principal = Depends(current_principal)):
        attendances = engine.attendance.list_event_attendances(event_id)
        return {"event_id": event_id, "attendances": attendances, "total": len(attendances)}

    @api.get("/character/{character_id}")
    def character_attendances(character_id: PathId, principal: Principal = Depends(current_principal)):
        return engine.attendance.list_character_attendances(character_id)

    @api.post("", response_model=AttendanceRecordResponse, status_code=201)
    def record_attendance(request: AttendanceRequest, principal: Principal = Depends(current_principal)):
        """Record one attendance and credit the event's DKP reward."""
        return engine.attendance.record_attendance(request.event_id, request.character_id, actor=principal)

    @api.delete("/{event_id}/{character_id}", response_model=AttendanceRemovalResponse)
    def remove_attendance(event_id: PathId, character_id: PathId, principal: Principal = Depends(current_principal)):
        """Remove one attendance and debit the DKP it credited."""
        return engine.attendance.remove_attendance(event_id, character_id, actor=principal)

    @api.post("/bulk", response_model=BulkAttendanceResponse)
    def record_bulk(request: BulkAttendanceRequest, principal: Principal = Depends(officer)):
        """Record attendance for many characters (Officer or Admin).

        Per-character problems are reported in ``failures``; only an unknown
        event fails the whole request.
        """
        result = engine.attendance.record_attendance_bulk(request.event_id, request.character_ids, actor=principal)
        return BulkAttendanceResponse(
            event_id=result.event_id,
            successes=[asdict(record) for record in result.successes],
            failures=[asdict(failure) for failure in result.failures],
            success_count=result.success_count,
            failure_count=result.failure_count,
            total_credited=result.total_credited,
        )

    @api.get("/stats")
    def attendance_stats(
        start: datetime | None = None,
        end: datetime | None = None,
        character_id: QueryId = None,
        user_id: QueryId = None,
        top: int = Query(default=10, ge=1, le=100),
        principal: Principal = Depends(officer),
    ):
        """Attendance statistics over an optional window (Officer or Admin)."""
        return engine.attendance.attendance_stats(
            start=start, end=end, character_id=character_id, user_id=user_id, top_limit=top
        )

    return api
