"""
Command line entry point.

    python -m taskpulse serve
    python -m taskpulse create-user --name Ada --email ada@example.com --password ... --role admin
"""

import argparse
import asyncio
import sys

from loguru import logger

from .app import run
from .auth import UserDatabase
from .config import get_settings
from .errors import TaskPulseError
from .logging_setup import configure_logging
from .store import DocumentStore


def _serve(args) -> int:
    settings = get_settings()
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    return 0


def _create_user(args) -> int:
    settings = get_settings()
    users = UserDatabase(DocumentStore(settings.db_path))
    try:
        user = users.create_user(
            name=args.name,
            email=args.email,
            password=args.password,
            role=args.role,
            team=args.team,
            department=args.department,
        )
    except TaskPulseError as e:
        logger.error(f"Could not create user: {e.message}")
        return 1

    logger.success(f"Created user {user.email} ({user.user_id})")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="taskpulse", description="TaskPulse API server")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and WebSocket server")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--role", default="employee")
    create.add_argument("--team")
    create.add_argument("--department")
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
