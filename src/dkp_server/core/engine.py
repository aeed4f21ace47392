"""Guild engine: wires the database handle into every component."""

from __future__ import annotations

import logging
from typing import Any

from dkp_server.api.permissions import Principal
from dkp_server.audit import AuditJournal
from dkp_server.db import characters_repo, events_repo, items_repo, sessions_repo, users_repo, wishes_repo
from dkp_server.db.connection import Database
from dkp_server.db.schema import init_database
from dkp_server.db.timestamps import to_db_timestamp, utc_now
from dkp_server.services.attendance import AttendanceEngine
from dkp_server.services.characters import CharacterService
from dkp_server.services.events import EventScheduler
from dkp_server.services.items import ItemCatalog
from dkp_server.services.ledger import DkpLedger
from dkp_server.services.roles import RoleManager
from dkp_server.services.wishlist import WishRankingEngine

logger = logging.getLogger(__name__)


class GuildEngine:
    """Owns one :class:`Database` handle and the components built on it.

    Args:
        db: Database to operate on. The schema is created if missing.
        journal: Audit journal for privileged actions, or ``None`` to disable.
        session_ttl_minutes: Lifetime of sessions issued by :meth:`issue_session`.
    """

    def __init__(
        self,
        db: Database,
        *,
        journal: AuditJournal | None = None,
        session_ttl_minutes: int = 10080,
    ) -> None:
        self.db = db
        self.journal = journal
        self.session_ttl_minutes = session_ttl_minutes
        init_database(db)

        self.ledger = DkpLedger(db, journal)
        self.characters = CharacterService(db)
        self.attendance = AttendanceEngine(db, self.ledger, journal)
        self.wishes = WishRankingEngine(db)
        self.events = EventScheduler(db, self.ledger, journal)
        self.items = ItemCatalog(db, journal)
        self.roles = RoleManager(db, journal)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def register_user(self, discord_id: str, username: str, *, role: str | None = None) -> int:
        """Create or refresh a user record and return its id."""
        with self.db.connection_scope(write=True) as conn:
            return users_repo.upsert_user(conn, discord_id, username, role=role)

    def issue_session(self, user_id: int) -> str:
        """Create a bearer session for a user and return the token."""
        with self.db.connection_scope(write=True) as conn:
            return sessions_repo.create_session(conn, user_id, ttl_minutes=self.session_ttl_minutes)

    def resolve_principal(self, token: str) -> Principal | None:
        """Return the principal for a live token, or ``None``."""
        with self.db.connection_scope() as conn:
            row = sessions_repo.get_session_user(conn, token)
        if row is None:
            return None
        return Principal(user_id=row["user_id"], username=row["username"], role=row["role"])

    def purge_expired_sessions(self) -> int:
        with self.db.connection_scope(write=True) as conn:
            removed = sessions_repo.delete_expired_sessions(conn)
        if removed:
            logger.info("Purged %s expired session(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def guild_stats(self) -> dict[str, Any]:
        """Counts across the whole guild for the admin dashboard."""
        now = utc_now()
        with self.db.connection_scope() as conn:
            roles = users_repo.count_users_by_role(conn)
            characters = characters_repo.count_characters(conn)
            event_totals = events_repo.event_stats(conn, to_db_timestamp(now))
            wish_totals = wishes_repo.wish_totals(conn)
            result = {
                "users": {
                    "total": sum(roles.values()),
                    "active_sessions": sessions_repo.count_active_sessions(conn),
                    "roles": {
                        "members": roles.get("MEMBER", 0),
                        "officers": roles.get("OFFICER", 0),
                        "admins": roles.get("ADMIN", 0),
                    },
                },
                "guild": {
                    "total_characters": characters["total"],
                    "active_characters": characters["active"],
                    "total_items": items_repo.count_items(conn),
                    "total_wishes": wish_totals["total_wishes"],
                    "total_events": event_totals["total_events"],
                    "total_dkp": characters_repo.total_dkp(conn),
                },
            }
        result["timestamp"] = now.isoformat()
        return result
