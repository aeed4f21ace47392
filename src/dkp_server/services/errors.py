"""Domain error taxonomy shared by services and API routes.

Each error carries a stable ``reason`` key for callers (and tests) to branch
on, plus a human-readable message. The HTTP layer maps the class to a status
code; nothing below the API layer knows about HTTP.
"""

from __future__ import annotations


class GuildError(Exception):
    """Base class for expected domain failures."""

    default_reason = "guild_error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason


class NotFoundError(GuildError):
    """A referenced record does not exist (or is not visible to the caller)."""

    default_reason = "not_found"


class ConflictError(GuildError):
    """The operation collides with existing state."""

    default_reason = "conflict"


class InvalidArgumentError(GuildError):
    """Input is structurally valid but semantically unacceptable."""

    default_reason = "invalid_argument"


class ForbiddenError(GuildError):
    """The caller's role is below what the operation requires."""

    default_reason = "forbidden"
