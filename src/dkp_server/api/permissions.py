"""
Role-based permission system (RBAC).

This module implements the guild's access control. It defines:
1. User roles with their privilege levels
2. Specific permissions that can be checked
3. Mapping of which roles have which permissions
4. Helpers for hierarchy checks and character ownership

Role Hierarchy (lowest to highest):
    Member → Officer → Admin

Permission Design:
- Each role has an explicit set of permissions
- Higher roles include lower role permissions by explicit set union
- Unknown role strings have level 0 and no permissions

Usage in API Routes:
1. Depend on ``require_minimum_role()`` from ``dkp_server.api.auth`` for
   route-level protection
2. Call ``require_role()`` inside a handler when the required level depends
   on the request
3. Call ``can_act_on_character()`` before touching a character on behalf of
   a member

Security Considerations:
- Members may only act on characters they own
- Officers and admins may act on any character
- Role changes are admin-only and an admin may never demote themselves
"""

from dataclasses import dataclass
from enum import Enum

from dkp_server.services.errors import ForbiddenError

# ============================================================================
# ROLE DEFINITIONS
# ============================================================================


class Role(Enum):
    """
    Guild roles, ordered by privilege level.

    Roles are stored as uppercase strings in the ``users.role`` column.

    Roles (in order of privilege):
        MEMBER: Regular guild member (lowest privilege)
        OFFICER: Runs events and attendance
        ADMIN: Manages users, roles and the item catalogue (highest privilege)
    """

    MEMBER = "MEMBER"
    OFFICER = "OFFICER"
    ADMIN = "ADMIN"


ROLE_LEVELS: dict[str, int] = {
    Role.MEMBER.value: 1,
    Role.OFFICER.value: 2,
    Role.ADMIN.value: 3,
}

# Roles ordered by level, used for one-step promote/demote.
ROLE_ORDER: tuple[Role, ...] = (Role.MEMBER, Role.OFFICER, Role.ADMIN)


# ============================================================================
# PERMISSION DEFINITIONS
# ============================================================================


class Permission(Enum):
    """
    Specific permissions that can be granted to roles.

    Permission Categories:
        - Member: self-service on own characters
        - Officer: event, attendance and balance operations on anyone
        - Admin: user management and catalogue control
    """

    # ========================================================================
    # MEMBER PERMISSIONS
    # ========================================================================
    MANAGE_OWN_CHARACTERS = "manage_own_characters"
    MANAGE_OWN_WISHES = "manage_own_wishes"

    # ========================================================================
    # OFFICER PERMISSIONS
    # ========================================================================
    MANAGE_ANY_CHARACTER = "manage_any_character"
    BULK_ATTENDANCE = "bulk_attendance"
    ADJUST_DKP = "adjust_dkp"
    VIEW_STATS = "view_stats"
    DELETE_ITEMS = "delete_items"

    # ========================================================================
    # ADMIN PERMISSIONS
    # ========================================================================
    MANAGE_ITEMS = "manage_items"
    FORCE_DELETE_ITEMS = "force_delete_items"
    MANAGE_USERS = "manage_users"
    CHANGE_ROLES = "change_roles"
    VIEW_AUDIT_LOG = "view_audit_log"


# ============================================================================
# ROLE-PERMISSION MAPPING
# ============================================================================

_MEMBER_PERMISSIONS = {
    Permission.MANAGE_OWN_CHARACTERS,
    Permission.MANAGE_OWN_WISHES,
}

_OFFICER_PERMISSIONS = _MEMBER_PERMISSIONS | {
    Permission.MANAGE_ANY_CHARACTER,
    Permission.BULK_ATTENDANCE,
    Permission.ADJUST_DKP,
    Permission.VIEW_STATS,
    Permission.DELETE_ITEMS,
}

ROLE_PERMISSIONS: dict[Role, set[Permission]] = {
    Role.MEMBER: set(_MEMBER_PERMISSIONS),
    Role.OFFICER: set(_OFFICER_PERMISSIONS),
    Role.ADMIN: _OFFICER_PERMISSIONS
    | {
        Permission.MANAGE_ITEMS,
        Permission.FORCE_DELETE_ITEMS,
        Permission.MANAGE_USERS,
        Permission.CHANGE_ROLES,
        Permission.VIEW_AUDIT_LOG,
    },
}


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller of an operation."""

    user_id: int
    username: str
    role: str

    @property
    def level(self) -> int:
        return get_role_hierarchy_level(self.role)


# ============================================================================
# PERMISSION CHECKING FUNCTIONS
# ============================================================================


def has_permission(role: str, permission: Permission) -> bool:
    """
    Check if a role has a specific permission.

    Args:
        role: Role string (case-insensitive)
        permission: Permission enum value to check

    Returns:
        True if the role has the permission, False if not or if role is invalid

    Example:
        >>> has_permission("OFFICER", Permission.BULK_ATTENDANCE)
        True
        >>> has_permission("MEMBER", Permission.MANAGE_USERS)
        False
    """
    try:
        role_enum = Role(role.upper())
    except (ValueError, AttributeError):
        return False
    return permission in ROLE_PERMISSIONS.get(role_enum, set())


# ============================================================================
# ROLE HIERARCHY FUNCTIONS
# ============================================================================


def get_role_hierarchy_level(role: str | None) -> int:
    """
    Get the numeric hierarchy level of a role.

    Hierarchy Levels:
        1 = Member
        2 = Officer
        3 = Admin

    Returns 0 for missing or unknown roles, which fails every check.

    Example:
        >>> get_role_hierarchy_level("OFFICER")
        2
        >>> get_role_hierarchy_level("guest")
        0
    """
    if not role:
        return 0
    return ROLE_LEVELS.get(role.upper(), 0)


def authorize(actor_role: str | None, minimum_role: str | Role) -> bool:
    """
    Return whether ``actor_role`` is at least ``minimum_role``.

    An unknown ``minimum_role`` never authorizes anyone.

    Example:
        >>> authorize("MEMBER", "OFFICER")
        False
        >>> authorize("ADMIN", "MEMBER")
        True
    """
    minimum = minimum_role.value if isinstance(minimum_role, Role) else minimum_role
    required = get_role_hierarchy_level(minimum)
    if required == 0:
        return False
    return get_role_hierarchy_level(actor_role) >= required


def require_role(actor_role: str | None, minimum_role: str | Role) -> None:
    """
    Raise ForbiddenError unless ``actor_role`` is at least ``minimum_role``.

    Raises:
        ForbiddenError: Role below the minimum (or unknown).
    """
    if not authorize(actor_role, minimum_role):
        minimum = minimum_role.value if isinstance(minimum_role, Role) else minimum_role
        raise ForbiddenError(
            f"Insufficient privileges. Minimum role required: {minimum}",
            reason="insufficient_role",
        )


def can_act_on_character(actor: Principal | None, owner_user_id: int) -> bool:
    """
    Check whether ``actor`` may act on a character owned by ``owner_user_id``.

    ``None`` stands for a trusted internal caller (CLI, maintenance jobs) and
    is always allowed.
    """
    if actor is None:
        return True
    if has_permission(actor.role, Permission.MANAGE_ANY_CHARACTER):
        return True
    return actor.user_id == owner_user_id
