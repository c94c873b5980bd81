"""
Playlister - Entry Point

Run with: python -m playlister <command>

Commands:
    migrate   apply pending migrations, then write the schema dump
    drop      discard every table (schema, data and migration ledger)
    schema    write the schema dump only
    status    list migrations and whether they are applied
    serve     run the read-only inspection API
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from playlister import __version__
from playlister.config import ConfigError, DatabaseConfig, load_database_config, load_web_config
from playlister.core import CoreError
from playlister.core.catalog_db import CatalogDb

logger = logging.getLogger("playlister")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playlister",
        description="Playlister - Songs, Artists and Genres with versioned migrations",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-e",
        "--env",
        type=str,
        default=None,
        help="Environment from database.toml (default: $PLAYLISTER_ENV or development)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate", help="Apply pending migrations and write the schema dump")
    sub.add_parser("drop", help="Discard all tables and data")
    sub.add_parser("schema", help="Write the schema dump")
    sub.add_parser("status", help="Show migration status")

    serve = sub.add_parser("serve", help="Run the read-only inspection API")
    serve.add_argument("--host", type=str, default=None, help="Host address to bind to")
    serve.add_argument("-p", "--port", type=int, default=None, help="Port to listen on")

    return parser


async def run_command(args: argparse.Namespace, config: DatabaseConfig) -> int:
    db = CatalogDb(config.database)
    await db.open()
    try:
        if args.command == "migrate":
            count = await db.migrate(schema_dump=config.schema_dump)
            logger.info("Migrated %s: %d migration(s) applied", config.environment, count)

        elif args.command == "drop":
            dropped = await db.drop()
            logger.info("Dropped %s: %s", config.environment, ", ".join(dropped) or "nothing")

        elif args.command == "schema":
            if config.schema_dump is None:
                logger.warning("No schema_dump path configured for %s", config.environment)
                return 1
            await db.dump_schema(config.schema_dump)

        elif args.command == "status":
            for state in await db.migration_status():
                mark = "up  " if state.applied else "down"
                print(f"{mark}  {state.version:03d}  {state.name}")

        elif args.command == "serve":
            from playlister.web.server import WebServer

            web = load_web_config()
            server = WebServer(db)
            await server.serve(host=args.host or web.host, port=args.port or web.port)

        return 0
    finally:
        await db.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = load_database_config(args.env)
    except (ConfigError, OSError) as e:
        logger.error("Configuration error: %s", e)
        return 2

    if not config.in_memory:
        Path(config.database).parent.mkdir(parents=True, exist_ok=True)

    try:
        return asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except CoreError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
