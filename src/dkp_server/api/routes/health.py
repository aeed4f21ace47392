"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (liveness check with database reachability and the
active session count).

The version string is read from ``dkp_server.__version__``, resolved via
``importlib.metadata`` from ``pyproject.toml``.
"""

from fastapi import APIRouter

from dkp_server import __version__
from dkp_server.core.engine import GuildEngine
from dkp_server.db import sessions_repo


def router(engine: GuildEngine) -> APIRouter:
    """Build the health router."""
    api = APIRouter(tags=["health"])

    @api.get("/")
    async def root():
        """Root endpoint showing API identity and current version."""
        return {"message": "Guild DKP API", "version": __version__}

    @api.get("/health")
    def health_check():
        """Health check endpoint."""
        with engine.db.connection_scope() as conn:
            active_sessions = sessions_repo.count_active_sessions(conn)
        return {"status": "ok", "active_sessions": active_sessions}

    return api
