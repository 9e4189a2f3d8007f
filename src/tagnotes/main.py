#!/usr/bin/env python
"""Main entry point for the tagnotes MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from tagnotes.config import STORAGE_BACKENDS, config
from tagnotes.observability import configure_logging, metrics
from tagnotes.server.mcp_server import TagNotesMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="tagnotes MCP Server")
    parser.add_argument(
        "--data-dir",
        help="Directory for the JSON storage backend",
        type=str,
        default=os.environ.get("TAGNOTES_DATA_DIR")
    )
    parser.add_argument(
        "--storage-backend",
        help="Where notes and tags are persisted",
        choices=[b for b in STORAGE_BACKENDS if b != "memory"],
        default=os.environ.get("TAGNOTES_STORAGE_BACKEND")
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path (sqlite backend)",
        type=str,
        default=os.environ.get("TAGNOTES_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("TAGNOTES_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.data_dir:
        config.data_dir = Path(args.data_dir)
    if args.storage_backend:
        config.storage_backend = args.storage_backend
    if args.database_path:
        config.database_path = Path(args.database_path)


def _save_metrics_on_exit(log_dir: Path):
    """Write the metrics snapshot next to the log files on shutdown."""
    if metrics.save_metrics(log_dir / "metrics.json"):
        logging.getLogger(__name__).info("Metrics saved to disk on shutdown")


def main(argv=None):
    """Run the tagnotes MCP server."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")
        atexit.register(_save_metrics_on_exit, log_dir)

    logger.info(f"Using {config.storage_backend} storage backend")
    try:
        server = TagNotesMcpServer()
    except Exception as e:
        logger.error(f"Failed to load notes: {e}")
        sys.exit(1)

    try:
        logger.info("Starting tagnotes MCP server")
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
