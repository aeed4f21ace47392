"""Wishlist management and DKP-based item priority.

Ranking is advisory: it tells officers who should get an item next, but it
never reserves or debits anything.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any

from dkp_server.api.permissions import Principal
from dkp_server.db import items_repo, wishes_repo
from dkp_server.db.connection import Database
from dkp_server.db.constants import ACTIVE
from dkp_server.services.characters import require_actionable_character, require_character
from dkp_server.services.errors import ConflictError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RankedWisher:
    character_id: int
    character_name: str
    dkp: int
    active: str
    affordable: bool
    eligible: bool
    priority: int


@dataclass(slots=True)
class ItemRanking:
    item_id: int
    item_name: str
    min_dkp_cost: int
    wishers: list[RankedWisher] = field(default_factory=list)

    @property
    def eligible_count(self) -> int:
        return sum(1 for wisher in self.wishers if wisher.eligible)


def require_item(conn: sqlite3.Connection, item_id: int) -> dict[str, Any]:
    """Load an item or raise NotFoundError."""
    item = items_repo.get_item(conn, item_id)
    if item is None:
        raise NotFoundError(f"Item {item_id} not found", reason="item_not_found")
    return item


class WishRankingEngine:
    """Owns wishes and ranks the characters wishing for an item."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def rank_wishers(self, item_id: int) -> ItemRanking:
        """Rank an item's wishers by balance, highest first.

        Equal balances keep wish order (earliest wish first). A wisher is
        ``affordable`` when ``dkp >= min_dkp_cost`` and ``eligible`` when also
        ACTIVE.

        Raises:
            NotFoundError: Unknown item.
        """
        with self.db.connection_scope() as conn:
            item = require_item(conn, item_id)
            rows = wishes_repo.list_item_wishers(conn, item_id)

        cost = int(item["min_dkp_cost"])
        ranking = ItemRanking(item_id=item_id, item_name=item["name"], min_dkp_cost=cost)
        for priority, row in enumerate(rows, start=1):
            affordable = int(row["dkp"]) >= cost
            ranking.wishers.append(
                RankedWisher(
                    character_id=row["character_id"],
                    character_name=row["character_name"],
                    dkp=int(row["dkp"]),
                    active=row["active"],
                    affordable=affordable,
                    eligible=affordable and row["active"] == ACTIVE,
                    priority=priority,
                )
            )
        return ranking

    def item_wishes(self, item_id: int) -> dict[str, Any]:
        """Wishers of one item in priority order, with affordability counts.

        Raises:
            NotFoundError: Unknown item.
        """
        with self.db.connection_scope() as conn:
            item = require_item(conn, item_id)
        ranking = self.rank_wishers(item_id)
        return {
            "item": {
                "id": item["id"],
                "name": item["name"],
                "image_url": item["image_url"],
                "min_dkp_cost": ranking.min_dkp_cost,
            },
            "wishes": [asdict(wisher) for wisher in ranking.wishers],
            "total_wishes": len(ranking.wishers),
            "eligible_wishes": ranking.eligible_count,
        }

    def list_wishes(
        self,
        *,
        viewer: Principal | None = None,
        character_id: int | None = None,
        item_id: int | None = None,
        user_id: int | None = None,
        include_inactive: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Filtered, paginated wish listing.

        Without ``user_id`` the listing is limited to the viewer's own
        characters. Inactive characters are left out unless asked for.
        """
        if user_id is None and viewer is not None:
            user_id = viewer.user_id
        with self.db.connection_scope() as conn:
            rows, total = wishes_repo.list_wishes(
                conn,
                character_id=character_id,
                item_id=item_id,
                user_id=user_id,
                include_inactive=include_inactive,
                limit=limit,
                offset=offset,
            )
        return [{**row, "can_afford": int(row["dkp"]) >= int(row["min_dkp_cost"])} for row in rows], total

    def add_wish(self, character_id: int, item_id: int, *, actor: Principal | None = None) -> dict[str, Any]:
        """Add an item to a character's wishlist.

        Raises:
            NotFoundError: Unknown (or not actionable) character, or unknown item.
            InvalidArgumentError: The character is not ACTIVE.
            ConflictError: The wish already exists.
        """
        try:
            with self.db.connection_scope(write=True) as conn:
                character = require_actionable_character(conn, character_id, actor)
                item = require_item(conn, item_id)
                if character["active"] != ACTIVE:
                    raise InvalidArgumentError(
                        f"Character {character['name']} is not active", reason="character_inactive"
                    )
                seq = wishes_repo.insert_wish(conn, character_id, item_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Character {character_id} already wishes for item {item_id}", reason="wish_exists"
            ) from exc
        logger.info("Wish added: character=%s item=%s seq=%s", character_id, item_id, seq)
        return {
            "character_id": character_id,
            "item_id": item_id,
            "item_name": item["name"],
            "seq": seq,
        }

    def remove_wish(self, character_id: int, item_id: int, *, actor: Principal | None = None) -> None:
        """Remove one wish. Raises NotFoundError if it does not exist."""
        with self.db.connection_scope(write=True) as conn:
            require_actionable_character(conn, character_id, actor)
            if not wishes_repo.delete_wish(conn, character_id, item_id):
                raise NotFoundError(
                    f"Character {character_id} has no wish for item {item_id}", reason="wish_not_found"
                )
        logger.info("Wish removed: character=%s item=%s", character_id, item_id)

    def clear_wishes(self, character_id: int, *, actor: Principal | None = None) -> int:
        """Remove every wish of a character and return how many were removed."""
        with self.db.connection_scope(write=True) as conn:
            require_actionable_character(conn, character_id, actor)
            removed = wishes_repo.delete_character_wishes(conn, character_id)
        logger.info("Wishes cleared: character=%s removed=%s", character_id, removed)
        return removed

    def character_wishes(self, character_id: int) -> dict[str, Any]:
        """A character's wished items with ``can_afford`` flags."""
        with self.db.connection_scope() as conn:
            character = require_character(conn, character_id)
            rows = wishes_repo.list_character_wishes(conn, character_id)
        dkp = int(character["dkp"])
        return {
            "character_id": character_id,
            "character_name": character["name"],
            "dkp": dkp,
            "wishes": [{**row, "can_afford": dkp >= int(row["min_dkp_cost"])} for row in rows],
        }

    def most_wished_items(self, limit: int = 10) -> list[dict[str, Any]]:
        with self.db.connection_scope() as conn:
            return wishes_repo.most_wished_items(conn, limit=limit)

    def wish_stats(self, limit: int = 10) -> dict[str, Any]:
        """Wish totals plus the most wished items."""
        with self.db.connection_scope() as conn:
            totals = wishes_repo.wish_totals(conn)
            top = wishes_repo.most_wished_items(conn, limit=limit)
        return {**totals, "most_wished_items": top}
