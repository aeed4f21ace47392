"""Shared database constants for the DB package.

Centralizes enumerated column values consumed by schema checks, repository
queries, services and tests so they cannot drift apart.
"""

from __future__ import annotations

ACTIVE = "ACTIVE"
NOT_ACTIVE = "NOT_ACTIVE"
CHARACTER_STATES = (ACTIVE, NOT_ACTIVE)

COMBAT_ROLES = ("DPS", "TANK", "HEALER")

# dkp_transactions.reason values
REASON_ATTENDANCE_CREDIT = "attendance_credit"
REASON_ATTENDANCE_REVERSAL = "attendance_reversal"
REASON_MANUAL_ADJUSTMENT = "manual_adjustment"

DEFAULT_ITEM_MIN_DKP_COST = 1

# Largest value an SQLite INTEGER column can hold.
SQLITE_MAX_INTEGER = 2**63 - 1
