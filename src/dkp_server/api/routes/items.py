"""Item catalogue endpoints and per-item wish ranking."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency, require_minimum_role
from dkp_server.api.models import (
    ItemCreateRequest,
    ItemListResponse,
    ItemRankingResponse,
    ItemResponse,
    ItemUpdateRequest,
    PathId,
)
from dkp_server.api.permissions import Principal, Role
from dkp_server.core.engine import GuildEngine
from dkp_server.db.constants import SQLITE_MAX_INTEGER


def router(engine: GuildEngine) -> APIRouter:
    """Build the item router."""
    api = APIRouter(prefix="/items", tags=["items"])
    current_principal = principal_dependency(engine)
    officer = require_minimum_role(current_principal, Role.OFFICER)
    admin = require_minimum_role(current_principal, Role.ADMIN)

    @api.get("", response_model=ItemListResponse)
    def list_items(
        search: str | None = None,
        limit: int = Query(default=50, ge=1, le=200),
        offset: int = Query(default=0, ge=0, le=SQLITE_MAX_INTEGER),
        principal: Principal = Depends(current_principal),
    ):
        items, total = engine.items.list_items(search=search, limit=limit, offset=offset)
        return ItemListResponse(items=items, total=total, limit=limit, offset=offset)

    @api.post("", response_model=ItemResponse, status_code=201)
    def create_item(request: ItemCreateRequest, principal: Principal = Depends(admin)):
        """Add an item to the catalogue (Admin only)."""
        return engine.items.create_item(request.name, image_url=request.image_url, min_dkp_cost=request.min_dkp_cost)

    @api.get("/{item_id}", response_model=ItemResponse)
    def get_item(item_id: PathId, principal: Principal = Depends(current_principal)):
        return engine.items.get_item(item_id)

    @api.put("/{item_id}", response_model=ItemResponse)
    def update_item(item_id: PathId, request: ItemUpdateRequest, principal: Principal = Depends(admin)):
        """Update an item (Admin only)."""
        return engine.items.update_item(item_id, request.model_dump(exclude_unset=True))

    @api.delete("/{item_id}")
    def delete_item(item_id: PathId, principal: Principal = Depends(officer)):
        """Delete an item that nobody wishes for (Officer or Admin)."""
        item = engine.items.delete_item(item_id, actor=principal)
        return {"message": "Item deleted successfully", "item_id": item["id"], "name": item["name"]}

    @api.delete("/{item_id}/force")
    def force_delete_item(item_id: PathId, principal: Principal = Depends(admin)):
        """Delete an item together with its wishes (Admin only)."""
        item = engine.items.delete_item(item_id, force=True, actor=principal)
        return {
            "message": "Item and associated wishes deleted successfully",
            "item_id": item["id"],
            "name": item["name"],
            "wishes_removed": item["wish_count"],
        }

    @api.get("/{item_id}/ranking", response_model=ItemRankingResponse)
    def item_ranking(item_id: PathId, principal: Principal = Depends(current_principal)):
        """Wishing characters ordered by DKP, with affordability flags."""
        ranking = engine.wishes.rank_wishers(item_id)
        return ItemRankingResponse(
            item_id=ranking.item_id,
            item_name=ranking.item_name,
            min_dkp_cost=ranking.min_dkp_cost,
            eligible_count=ranking.eligible_count,
            wishers=[asdict(wisher) for wisher in ranking.wishers],
        )

    return api
