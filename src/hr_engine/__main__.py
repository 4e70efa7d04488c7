"""Entry point for running the application.

Usage:
    python -m hr_engine                 # serve the API with uvicorn
    python -m hr_engine serve --port 9000
    python -m hr_engine init-db         # create tables from the ORM models
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from hr_engine.config import Settings, get_settings
from hr_engine.database import create_schema, dispose_db

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m hr_engine",
        description="HR engine API server and maintenance commands",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve = subparsers.add_parser("serve", help="Run the API server (default)")
    serve.add_argument("--host", help="Bind address (defaults to HOST)")
    serve.add_argument("--port", type=int, help="Bind port (defaults to PORT)")

    subparsers.add_parser("init-db", help="Create database tables for DATABASE_URL")
    return parser


async def _init_db() -> None:
    try:
        await create_schema()
    finally:
        await dispose_db()


def serve(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    uvicorn.run(
        "hr_engine.api.app:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )


def main(argv: list[str] | None = None) -> int:
    """Run the application."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init-db":
        asyncio.run(_init_db())
        logger.info("Database schema created")
        return 0

    serve(settings, getattr(args, "host", None), getattr(args, "port", None))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
