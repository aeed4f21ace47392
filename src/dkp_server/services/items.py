"""Item catalogue management."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from dkp_server.api.permissions import Principal
from dkp_server.audit import AuditJournal, actor_payload
from dkp_server.db import items_repo
from dkp_server.db.connection import Database
from dkp_server.db.constants import DEFAULT_ITEM_MIN_DKP_COST
from dkp_server.services.errors import ConflictError, InvalidArgumentError
from dkp_server.services.wishlist import require_item

logger = logging.getLogger(__name__)


def _validate(fields: dict[str, Any]) -> None:
    if "name" in fields and (fields["name"] is None or not str(fields["name"]).strip()):
        raise InvalidArgumentError("Item name is required", reason="invalid_name")
    if "min_dkp_cost" in fields and (fields["min_dkp_cost"] is None or fields["min_dkp_cost"] < 0):
        raise InvalidArgumentError("Minimum DKP cost cannot be negative", reason="invalid_cost")


class ItemCatalog:
    def __init__(self, db: Database, journal: AuditJournal | None = None) -> None:
        self.db = db
        self.journal = journal

    def create_item(
        self, name: str, *, image_url: str | None = None, min_dkp_cost: int = DEFAULT_ITEM_MIN_DKP_COST
    ) -> dict[str, Any]:
        """Create an item. Raises ConflictError when the name is taken."""
        _validate({"name": name, "min_dkp_cost": min_dkp_cost})
        try:
            with self.db.connection_scope(write=True) as conn:
                item_id = items_repo.create_item(conn, name.strip(), image_url=image_url, min_dkp_cost=min_dkp_cost)
                item = require_item(conn, item_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Item '{name}' already exists", reason="item_exists") from exc
        logger.info("Item created: id=%s name=%r cost=%s", item_id, item["name"], min_dkp_cost)
        return item

    def get_item(self, item_id: int) -> dict[str, Any]:
        with self.db.connection_scope() as conn:
            return require_item(conn, item_id)

    def list_items(
        self, *, search: str | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[dict[str, Any]], int]:
        with self.db.connection_scope() as conn:
            return items_repo.list_items(conn, search=search, limit=limit, offset=offset)

    def update_item(self, item_id: int, fields: dict[str, Any]) -> dict[str, Any]:
        _validate(fields)
        if "name" in fields:
            fields = {**fields, "name": str(fields["name"]).strip()}
        try:
            with self.db.connection_scope(write=True) as conn:
                require_item(conn, item_id)
                items_repo.update_item(conn, item_id, fields)
                return require_item(conn, item_id)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Item '{fields.get('name')}' already exists", reason="item_exists") from exc

    def delete_item(self, item_id: int, *, force: bool = False, actor: Principal | None = None) -> dict[str, Any]:
        """Delete an item.

        Without ``force`` an item that still has wishes is kept and a
        ConflictError is raised; with ``force`` its wishes are removed too.

        Returns:
            The deleted item row (including the wish count it had).
        """
        with self.db.connection_scope(write=True) as conn:
            item = require_item(conn, item_id)
            if item["wish_count"] and not force:
                raise ConflictError(
                    f"This item has {item['wish_count']} wish(es). Remove all wishes first or use force delete.",
                    reason="item_has_wishes",
                )
            items_repo.delete_item(conn, item_id)

        logger.info("Item deleted: id=%s force=%s wishes_removed=%s", item_id, force, item["wish_count"])
        if self.journal is not None:
            self.journal.record(
                "item.force_deleted" if force else "item.deleted",
                {"item_id": item_id, "name": item["name"], "wishes_removed": item["wish_count"]},
                actor=actor_payload(actor),
            )
        return item
