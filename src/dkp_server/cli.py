"""
Command-line interface for the guild DKP server.

Provides CLI commands for server management:
- init-db: Initialize the database schema
- create-user: Create (or refresh) a user with a role and print a session token
- run: Start the API server

Usage:
    dkp-server init-db
    dkp-server create-user --discord-id 1234 --username raidlead --role ADMIN
    dkp-server run [--port PORT] [--host HOST]

Environment Variables:
    DKP_BOOTSTRAP_DISCORD_ID: Discord id for create-user when --discord-id is omitted
    DKP_BOOTSTRAP_USERNAME: Username for create-user when --username is omitted
    DKP_HOST / DKP_PORT: Bind address for run (see dkp_server.config)
"""

import argparse
import os
import sqlite3
import sys

from dkp_server.db.errors import DatabaseError


def get_bootstrap_identity_from_env() -> tuple[str, str] | None:
    """
    Get the bootstrap user identity from environment variables.

    Returns:
        Tuple of (discord_id, username) if both variables are set, else None.
    """
    discord_id = os.environ.get("DKP_BOOTSTRAP_DISCORD_ID")
    username = os.environ.get("DKP_BOOTSTRAP_USERNAME")
    if discord_id and username:
        return discord_id, username
    return None


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from dkp_server.db.connection import get_database
    from dkp_server.db.schema import init_database

    db = get_database()
    try:
        init_database(db)
    except (DatabaseError, sqlite3.Error, OSError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    print(f"Database initialized successfully at {db.path}.")
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    """
    Create a user with the given role and issue a bearer session token.

    An existing user (same discord id) keeps its role unless ``--role`` is
    given explicitly, in which case the role is set.

    Returns:
        0 on success, 1 on error
    """
    from dkp_server.api.permissions import Role
    from dkp_server.config import config
    from dkp_server.core.engine import GuildEngine
    from dkp_server.db.connection import get_database
    from dkp_server.services.errors import GuildError

    discord_id, username = args.discord_id, args.username
    if not (discord_id and username):
        env_identity = get_bootstrap_identity_from_env()
        if env_identity is None:
            print(
                "Error: No identity provided.\n"
                "Pass --discord-id and --username, or set DKP_BOOTSTRAP_DISCORD_ID "
                "and DKP_BOOTSTRAP_USERNAME.",
                file=sys.stderr,
            )
            return 1
        discord_id, username = env_identity

    role = args.role.upper() if args.role else None
    if role is not None and role not in {r.value for r in Role}:
        print(f"Error: Invalid role '{args.role}'. Choose MEMBER, OFFICER or ADMIN.", file=sys.stderr)
        return 1

    try:
        engine = GuildEngine(get_database(), session_ttl_minutes=config.session.ttl_minutes)
        user_id = engine.register_user(discord_id, username, role=role)
        if role is not None:
            engine.roles.change_role(user_id, role)
        token = engine.issue_session(user_id)
    except (DatabaseError, sqlite3.Error, OSError, GuildError) as e:
        print(f"Error creating user: {e}", file=sys.stderr)
        return 1

    print(f"User '{username}' (id {user_id}) ready with role {role or 'unchanged'}.")
    print(f"Session token: {token}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Start the API server.

    ``--host``/``--port`` override the configured bind address.

    Returns:
        0 on clean shutdown
    """
    from dkp_server.api.server import start_server
    from dkp_server.config import config, configure_logging, print_config_summary

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    configure_logging(config)
    print_config_summary()
    start_server()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dkp-server",
        description="Guild DKP server - attendance, DKP ledger and item wishlists",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description="Create all tables and indexes if they do not exist yet.",
    )
    init_parser.set_defaults(func=cmd_init_db)

    user_parser = subparsers.add_parser(
        "create-user",
        help="Create a user and print a session token",
        description=(
            "Create or refresh a user record and issue a bearer session token. "
            "Uses DKP_BOOTSTRAP_DISCORD_ID and DKP_BOOTSTRAP_USERNAME if the "
            "options are omitted."
        ),
    )
    user_parser.add_argument("--discord-id", type=str, help="External (Discord) user id")
    user_parser.add_argument("--username", type=str, help="Display name")
    user_parser.add_argument(
        "--role",
        type=str,
        help="MEMBER, OFFICER or ADMIN (new users default to MEMBER)",
    )
    user_parser.set_defaults(func=cmd_create_user)

    run_parser = subparsers.add_parser(
        "run",
        help="Run the API server",
        description="Start the FastAPI server under uvicorn.",
    )
    run_parser.add_argument(
        "--port",
        "-p",
        type=int,
        help="API server port (default: 8000, or DKP_PORT env var)",
    )
    run_parser.add_argument(
        "--host",
        type=str,
        help="Host to bind to (default: 0.0.0.0, or DKP_HOST env var)",
    )
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
