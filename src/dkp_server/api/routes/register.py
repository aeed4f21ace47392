"""
Route registration entry point for the FastAPI application.

Each resource lives in its own router module built by ``router(engine)``.
"""

from fastapi import FastAPI

from dkp_server.api.routes import admin, attendance, characters, events, health, items, wishes
from dkp_server.core.engine import GuildEngine


def register_routes(app: FastAPI, engine: GuildEngine) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router(engine))
    app.include_router(characters.router(engine))
    app.include_router(events.router(engine))
    app.include_router(attendance.router(engine))
    app.include_router(items.router(engine))
    app.include_router(wishes.router(engine))
    app.include_router(admin.router(engine))
