"""Wishlist endpoints."""

from fastapi import APIRouter, Depends, Query

from dkp_server.api.auth import principal_dependency
from dkp_server.api.models import PathId, QueryId, WishRequest
from dkp_server.api.permissions import Principal
from dkp_server.core.engine import GuildEngine


def router(engine: GuildEngine) -> APIRouter:
    """Build the wishlist router."""
    api = APIRouter(prefix="/wishes", tags=["wishes"])
    current_principal = principal_dependency(engine)

    @api.get("")
    def list_wishes(
        character_id: QueryId = None,
        item_id: QueryId = None,
        user_id: QueryId = None,
        include_inactive: bool = False,
        page: int = Query(default=1, ge=1, le=1_000_000),
        limit: int = Query(default=20, ge=1, le=100),
        principal: Principal = Depends(current_principal),
    ):
        """Filtered wish listing; defaults to the caller's own characters."""
        wishes, total = engine.wishes.list_wishes(
            viewer=principal,
            character_id=character_id,
            item_id=item_id,
            user_id=user_id,
            include_inactive=include_inactive,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "wishes": wishes,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }

    @api.get("/stats")
    def wish_stats(
        limit: int = Query(default=10, ge=1, le=100),
        principal: Principal = Depends(current_principal),
    ):
        return engine.wishes.wish_stats(limit=limit)

    @api.get("/item/{item_id}")
    def item_wishes(item_id: PathId, principal: Principal = Depends(current_principal)):
        """Characters wishing for an item, in priority order."""
        return engine.wishes.item_wishes(item_id)

    @api.get("/character/{character_id}")
    def character_wishes(character_id: PathId, principal: Principal = Depends(current_principal)):
        return engine.wishes.character_wishes(character_id)

    @api.post("", status_code=201)
    def add_wish(request: WishRequest, principal: Principal = Depends(current_principal)):
        """Add an item to one of the caller's characters' wishlist."""
        wish = engine.wishes.add_wish(request.character_id, request.item_id, actor=principal)
        return {"message": "Item added to wishlist", "wish": wish}

    @api.delete("/character/{character_id}")
    def clear_wishes(character_id: PathId, principal: Principal = Depends(current_principal)):
        removed = engine.wishes.clear_wishes(character_id, actor=principal)
        return {"message": "Wishlist cleared", "character_id": character_id, "removed": removed}

    @api.delete("/{character_id}/{item_id}")
    def remove_wish(character_id: PathId, item_id: PathId, principal: Principal = Depends(current_principal)):
        engine.wishes.remove_wish(character_id, item_id, actor=principal)
        return {"message": "Item removed from wishlist", "character_id": character_id, "item_id": item_id}

    return api
