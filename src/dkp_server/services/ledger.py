"""The single balance-mutation path.

Every change to ``characters.dkp`` goes through :meth:`DkpLedger.apply_delta`,
which must be called inside an open write scope. It updates the balance and
appends the matching ``dkp_transactions`` row on the same connection, so both
commit or roll back together.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from dkp_server.api.permissions import Principal
from dkp_server.audit import AuditJournal, actor_payload
from dkp_server.db import characters_repo, ledger_repo
from dkp_server.db.connection import Database
from dkp_server.db.constants import REASON_MANUAL_ADJUSTMENT, SQLITE_MAX_INTEGER
from dkp_server.services.errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


class InsufficientBalance(Exception):
    """Raised by ``apply_delta`` when the balance would drop below zero."""

    def __init__(self, character_id: int, balance: int, delta: int) -> None:
        super().__init__(f"character {character_id} has {balance} DKP, cannot apply {delta}")
        self.character_id = character_id
        self.balance = balance
        self.delta = delta


@dataclass(slots=True)
class BalanceChange:
    character_id: int
    delta: int
    balance_after: int
    transaction_id: int


class DkpLedger:
    """Balance mutations plus their append-only history."""

    def __init__(self, db: Database, journal: AuditJournal | None = None) -> None:
        self.db = db
        self.journal = journal

    def apply_delta(
        self,
        conn: sqlite3.Connection,
        character_id: int,
        delta: int,
        reason: str,
        *,
        event_id: int | None = None,
        actor_user_id: int | None = None,
        note: str | None = None,
    ) -> BalanceChange:
        """Apply ``delta`` on ``conn`` and append a transaction row.

        Raises:
            NotFoundError: Unknown character.
            InsufficientBalance: The balance would become negative.
            InvalidArgumentError: The balance would overflow.
        """
        balance = characters_repo.get_dkp(conn, character_id)
        if balance is None:
            raise NotFoundError(f"Character {character_id} not found", reason="character_not_found")
        if balance + delta < 0:
            raise InsufficientBalance(character_id, balance, delta)
        if balance + delta > SQLITE_MAX_INTEGER:
            raise InvalidArgumentError(
                f"Balance of character {character_id} would exceed the storable maximum",
                reason="balance_overflow",
            )

        try:
            balance_after = characters_repo.apply_dkp_delta(conn, character_id, delta)
        except sqlite3.IntegrityError as exc:
            # CHECK (dkp >= 0) caught a concurrent debit the pre-check missed.
            raise InsufficientBalance(character_id, balance, delta) from exc
        transaction_id = ledger_repo.append_transaction(
            conn,
            character_id,
            delta,
            balance_after,
            reason,
            event_id=event_id,
            actor_user_id=actor_user_id,
            note=note,
        )
        return BalanceChange(
            character_id=character_id,
            delta=delta,
            balance_after=balance_after,
            transaction_id=transaction_id,
        )

    def adjust(
        self,
        character_id: int,
        delta: int,
        *,
        actor: Principal | None = None,
        note: str | None = None,
    ) -> BalanceChange:
        """Manual administrative adjustment in its own transaction.

        Raises:
            InvalidArgumentError: ``delta`` is zero, out of range or would overdraw the balance.
            NotFoundError: Unknown character.
        """
        if delta == 0:
            raise InvalidArgumentError("Adjustment amount cannot be zero", reason="zero_adjustment")
        if abs(delta) > SQLITE_MAX_INTEGER:
            raise InvalidArgumentError("Adjustment amount is out of range", reason="invalid_amount")
        try:
            with self.db.connection_scope(write=True) as conn:
                change = self.apply_delta(
                    conn,
                    character_id,
                    delta,
                    REASON_MANUAL_ADJUSTMENT,
                    actor_user_id=actor.user_id if actor else None,
                    note=note,
                )
        except InsufficientBalance as exc:
            raise InvalidArgumentError(
                f"Adjustment would make DKP negative (current balance {exc.balance})",
                reason="insufficient_balance",
            ) from exc
        logger.info(
            "Manual DKP adjustment: character=%s delta=%+d balance=%s actor=%s",
            character_id,
            delta,
            change.balance_after,
            actor.user_id if actor else None,
        )
        if self.journal is not None:
            self.journal.record(
                "dkp.manual_adjustment",
                {
                    "character_id": character_id,
                    "delta": delta,
                    "balance_after": change.balance_after,
                    "note": note,
                },
                actor=actor_payload(actor),
            )
        return change

    def history(self, character_id: int, *, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        """Return a character's transactions newest first.

        Raises:
            NotFoundError: Unknown character.
        """
        with self.db.connection_scope() as conn:
            if characters_repo.get_character(conn, character_id) is None:
                raise NotFoundError(f"Character {character_id} not found", reason="character_not_found")
            return ledger_repo.list_transactions(conn, character_id, limit=limit, offset=offset)
