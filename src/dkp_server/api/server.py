"""
FastAPI backend server for the guild DKP service.

This module builds the FastAPI application. It sets up:
- CORS middleware for the guild web frontend
- The guild engine instance that owns the database handle and components
- Exception handlers mapping domain, request-validation and database errors
  to HTTP responses
- All API route endpoints

``create_app()`` is the factory used by the CLI and by tests; ``start_server()``
runs it under uvicorn with the configured host and port.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dkp_server import __version__
from dkp_server.api.routes.register import register_routes
from dkp_server.audit import AuditJournal
from dkp_server.config import config
from dkp_server.core.engine import GuildEngine
from dkp_server.db.connection import get_database
from dkp_server.db.errors import DatabaseError, DatabaseOperationError
from dkp_server.services.errors import (
    ConflictError,
    ForbiddenError,
    GuildError,
    InvalidArgumentError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

# Domain error class -> HTTP status. Checked in order; GuildError is the fallback.
_STATUS_BY_ERROR: tuple[tuple[type[GuildError], int], ...] = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidArgumentError, 400),
    (ForbiddenError, 403),
)


def status_for_error(exc: GuildError) -> int:
    """Return the HTTP status code for a domain error."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


def describe_validation_error(exc: RequestValidationError) -> str:
    """Render the first request validation problem as ``"field: message"``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def build_engine() -> GuildEngine:
    """Create the engine from runtime configuration."""
    journal = AuditJournal(config.audit.absolute_path, enabled=config.audit.enabled)
    result = journal.verify()
    if result.status == "corrupt":
        logger.critical("Audit journal integrity failure at %s: %s", journal.path, result.error_detail)
    return GuildEngine(
        get_database(),
        journal=journal,
        session_ttl_minutes=config.session.ttl_minutes,
    )


def create_app(engine: GuildEngine | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Engine to serve. Built from configuration when omitted.
    """
    engine = engine or build_engine()
    docs = config.docs_should_be_enabled
    app = FastAPI(
        title="Guild DKP API",
        version=__version__,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GuildError)
    async def handle_guild_error(request: Request, exc: GuildError):
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"error": exc.message, "reason": exc.reason},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": describe_validation_error(exc), "reason": "invalid_argument"},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        operation = exc.context.operation if isinstance(exc, DatabaseOperationError) else "unknown"
        logger.exception("Database failure during %s %s (%s)", request.method, request.url.path, operation)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal database error", "reason": "database_error"},
        )

    register_routes(app, engine)
    return app


def start_server() -> None:
    """Run the application under uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(create_app(), host=config.server.host, port=config.server.port)
