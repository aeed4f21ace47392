"""Character endpoints: profile CRUD, balance history and manual adjustments."""

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency, require_minimum_role
from dkp_server.api.models import (
    BalanceChangeResponse,
    CharacterCreateRequest,
    CharacterListResponse,
    CharacterResponse,
    CharacterUpdateRequest,
    DkpAdjustmentRequest,
    PathId,
    QueryId,
)
from dkp_server.api.permissions import Principal, Role
from dkp_server.core.engine import GuildEngine
from dkp_server.db.constants import SQLITE_MAX_INTEGER


def router(engine: GuildEngine) -> APIRouter:
    """Build the character router."""
    api = APIRouter(prefix="/characters", tags=["characters"])
    current_principal = principal_dependency(engine)
    officer = require_minimum_role(current_principal, Role.OFFICER)

    @api.get("", response_model=CharacterListResponse)
    def list_characters(
        user_id: QueryId = None,
        active: str | None = Query(default=None, pattern="^(ACTIVE|NOT_ACTIVE)$"),
        principal: Principal = Depends(current_principal),
    ):
        """List characters, optionally filtered by owner and state."""
        characters = engine.characters.list_characters(user_id=user_id, active=active)
        return CharacterListResponse(characters=characters, total=len(characters))

    @api.post("", response_model=CharacterResponse, status_code=201)
    def create_character(
        request: CharacterCreateRequest,
        principal: Principal = Depends(current_principal),
    ):
        """Create a character for the caller (officers may create for anyone)."""
        return engine.characters.create_character(
            principal,
            request.name,
            owner_user_id=request.user_id,
            role=request.role,
            weapon1=request.weapon1,
            weapon2=request.weapon2,
            combat_power=request.combat_power,
            gear_image_url=request.gear_image_url,
        )

    @api.get("/{character_id}", response_model=CharacterResponse)
    def get_character(character_id: PathId, principal: Principal = Depends(current_principal)):
        return engine.characters.get_character(character_id)

    @api.put("/{character_id}", response_model=CharacterResponse)
    def update_character(
        character_id: PathId,
        request: CharacterUpdateRequest,
        principal: Principal = Depends(current_principal),
    ):
        """Update a character the caller owns (officers: any character)."""
        return engine.characters.update_character(
            character_id, request.model_dump(exclude_unset=True), actor=principal
        )

    @api.delete("/{character_id}")
    def delete_character(character_id: PathId, principal: Principal = Depends(current_principal)):
        engine.characters.delete_character(character_id, actor=principal)
        return {"message": "Character deleted successfully", "character_id": character_id}

    @api.post("/{character_id}/dkp", response_model=BalanceChangeResponse)
    def adjust_dkp(
        character_id: PathId,
        request: DkpAdjustmentRequest,
        principal: Principal = Depends(officer),
    ):
        """Manually credit or debit a balance (Officer or Admin)."""
        return engine.ledger.adjust(character_id, request.amount, actor=principal, note=request.note)

    @api.get("/{character_id}/ledger")
    def get_ledger(
        character_id: PathId,
        limit: int = Query(default=50, ge=1, le=500),
        offset: int = Query(default=0, ge=0, le=SQLITE_MAX_INTEGER),
        principal: Principal = Depends(current_principal),
    ):
        """Balance history of a character, newest first."""
        transactions = engine.ledger.history(character_id, limit=limit, offset=offset)
        return {"character_id": character_id, "transactions": transactions}

    return api
