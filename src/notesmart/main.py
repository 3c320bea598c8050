#!/usr/bin/env python
"""Command line entry point for notesmart."""
import argparse
import logging
import os
import sys
from pathlib import Path

from notesmart import __version__
from notesmart.config import config
from notesmart.exceptions import NotesmartError
from notesmart.models.db_models import init_db
from notesmart.observability import configure_logging
from notesmart.services.statistics_service import StatisticsService


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="notesmart data core")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTESMART_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("NOTESMART_LOG_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init", help="Create the database schema")
    stats = commands.add_parser("stats", help="Print a user's statistics as JSON")
    stats.add_argument("user_id", help="ID of the user to report on")
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
        config.database_url = None
    if args.log_dir:
        config.log_dir = Path(args.log_dir)


def main(argv=None) -> int:
    """Run a notesmart command."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)

    try:
        logger.info(f"Using database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    if args.command == "init":
        logger.info("Database schema ready")
        return 0

    try:
        stats = StatisticsService(engine=engine).get_user_statistics(args.user_id)
    except NotesmartError as e:
        logger.error(f"Could not compute statistics: {e}")
        sys.exit(1)
    print(stats.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
