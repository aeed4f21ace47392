"""
Pydantic models for API requests and responses.

Models are organized into two categories:
1. Request models: Data sent FROM the client TO the server
2. Response models: Data sent FROM the server TO the client

Request models check shape, types and the integer range SQLite can store.
Domain rules (time ranges, recurrence bounds, balance limits) are enforced by
the services so the same rules apply to every caller. Both kinds of violation
surface as 400 (see ``dkp_server.api.server``).
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import Path, Query
from pydantic import BaseModel, Field

from dkp_server.db.constants import SQLITE_MAX_INTEGER

CombatRole = Literal["DPS", "TANK", "HEALER"]
CharacterState = Literal["ACTIVE", "NOT_ACTIVE"]

# Integers bound for storage in an SQLite INTEGER column.
RecordId = Annotated[int, Field(ge=1, le=SQLITE_MAX_INTEGER)]
SignedAmount = Annotated[int, Field(ge=-SQLITE_MAX_INTEGER, le=SQLITE_MAX_INTEGER)]
Amount = Annotated[int, Field(ge=0, le=SQLITE_MAX_INTEGER)]

# Path and query parameter counterparts.
PathId = Annotated[int, Path(ge=1, le=SQLITE_MAX_INTEGER)]
QueryId = Annotated[int | None, Query(ge=1, le=SQLITE_MAX_INTEGER)]

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class CharacterCreateRequest(BaseModel):
    """
    Create a character.

    Attributes:
        name: Unique character name
        user_id: Owner; defaults to the caller (officers may set another user)
    """

    name: str = Field(min_length=1, max_length=64)
    user_id: RecordId | None = None
    role: CombatRole | None = None
    weapon1: str | None = Field(default=None, max_length=64)
    weapon2: str | None = Field(default=None, max_length=64)
    combat_power: Amount | None = None
    gear_image_url: str | None = None


class CharacterUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    role: CombatRole | None = None
    weapon1: str | None = Field(default=None, max_length=64)
    weapon2: str | None = Field(default=None, max_length=64)
    combat_power: Amount | None = None
    gear_image_url: str | None = None
    active: CharacterState | None = None


class DkpAdjustmentRequest(BaseModel):
    """
    Manual balance adjustment (officer or admin).

    Attributes:
        amount: Signed delta; negative values debit
        note: Free-text reason stored with the ledger row
    """

    amount: SignedAmount
    note: str | None = Field(default=None, max_length=500)


class RecurrenceRequest(BaseModel):
    """
    Weekly repetition for event creation.

    Attributes:
        type: Only "weekly" is supported
        interval: Weeks between occurrences (1-4)
        day_of_week: 0=Sunday .. 6=Saturday
        occurrences: Number of events to create (1-52)
    """

    type: Literal["weekly"] = "weekly"
    interval: int = 1
    day_of_week: int
    occurrences: int


class EventCreateRequest(BaseModel):
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    dkp_reward: Amount = 0
    recurrence: RecurrenceRequest | None = None


class EventUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    dkp_reward: Amount | None = None


class AttendanceRequest(BaseModel):
    event_id: RecordId
    character_id: RecordId


class BulkAttendanceRequest(BaseModel):
    """
    Record attendance for many characters at once.

    ``character_ids`` is deliberately loose: malformed entries are reported
    per item in the response instead of rejecting the whole request.
    """

    event_id: RecordId
    character_ids: list[Any] = Field(min_length=1, max_length=500)


class ItemCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    image_url: str | None = None
    min_dkp_cost: Amount = 1


class ItemUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    image_url: str | None = None
    min_dkp_cost: Amount | None = None


class WishRequest(BaseModel):
    character_id: RecordId
    item_id: RecordId


class RoleChangeRequest(BaseModel):
    role: str


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class CharacterResponse(BaseModel):
    id: int
    user_id: int
    name: str
    role: str | None = None
    weapon1: str | None = None
    weapon2: str | None = None
    combat_power: int | None = None
    gear_image_url: str | None = None
    active: str
    dkp: int
    created_at: str | None = None
    updated_at: str | None = None


class CharacterListResponse(BaseModel):
    characters: list[CharacterResponse]
    total: int


class BalanceChangeResponse(BaseModel):
    character_id: int
    delta: int
    balance_after: int
    transaction_id: int


class EventResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    start_time: str
    end_time: str
    dkp_reward: int
    attendance_count: int = 0
    created_at: str | None = None


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    limit: int
    offset: int


class OccurrenceFailureResponse(BaseModel):
    index: int
    title: str
    start_time: datetime
    message: str


class EventCreateResponse(BaseModel):
    """
    Result of event creation.

    For a single event ``events`` has one entry. For a series it holds every
    occurrence that was created and ``failures`` lists the ones that were not.
    """

    message: str
    events: list[EventResponse]
    failures: list[OccurrenceFailureResponse] = Field(default_factory=list)


class EventDeleteResponse(BaseModel):
    message: str
    deleted_event: EventResponse
    removed_attendances: int
    reversed_dkp: int


class AttendanceRecordResponse(BaseModel):
    event_id: int
    character_id: int
    credited_amount: int
    balance_after: int


class AttendanceRemovalResponse(BaseModel):
    event_id: int
    character_id: int
    reversed_amount: int
    balance_after: int


class BulkFailureResponse(BaseModel):
    character_id: Any
    reason: str
    message: str


class BulkAttendanceResponse(BaseModel):
    event_id: int
    successes: list[AttendanceRecordResponse]
    failures: list[BulkFailureResponse]
    success_count: int
    failure_count: int
    total_credited: int


class ItemResponse(BaseModel):
    id: int
    name: str
    image_url: str | None = None
    min_dkp_cost: int
    wish_count: int = 0


class ItemListResponse(BaseModel):
    items: list[ItemResponse]
    total: int
    limit: int
    offset: int


class RankedWisherResponse(BaseModel):
    character_id: int
    character_name: str
    dkp: int
    active: str
    affordable: bool
    eligible: bool
    priority: int


class ItemRankingResponse(BaseModel):
    item_id: int
    item_name: str
    min_dkp_cost: int
    eligible_count: int
    wishers: list[RankedWisherResponse]


class RoleChangeResponse(BaseModel):
    message: str
    user_id: int
    username: str
    old_role: str
    new_role: str


class UserSummary(BaseModel):
    id: int
    discord_id: str
    username: str
    role: str
    character_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None


class UserListResponse(BaseModel):
    users: list[UserSummary]
    total: int
    limit: int
    offset: int


class ErrorResponse(BaseModel):
    """
    Error envelope returned for every handled failure.

    Attributes:
        error: Human-readable message
        reason: Stable machine-readable key (for example "already_attended")
    """

    error: str
    reason: str
