#!/usr/bin/env python
"""Command-line harness for the Noted engine."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from noted import __version__
from noted.config import config
from noted.engine import NotesEngine
from noted.exceptions import ConfigurationError, NotedError
from noted.observability import configure_logging, metrics
from noted.services.client import fetch_notes, fetch_search

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog="noted", description="Noted note store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTED_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTED_LOG_LEVEL", "WARNING")
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List notes, most recently updated first")

    add = commands.add_parser("add", help="Create a note")
    add.add_argument("title")
    add.add_argument("content", nargs="?", default="")

    edit = commands.add_parser("edit", help="Replace a note's title and/or content")
    edit.add_argument("note_id", type=int)
    edit.add_argument("--title")
    edit.add_argument("--content")

    rm = commands.add_parser("rm", help="Delete a note")
    rm.add_argument("note_id", type=int)

    tag = commands.add_parser("tag", help="Replace a note's tags")
    tag.add_argument("note_id", type=int)
    tag.add_argument("tags", nargs="*")

    search = commands.add_parser("search", help="Full-text search")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=config.search_limit)

    return parser.parse_args(argv)


def update_config(args) -> Path:
    """Apply command line overrides and return the store location."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    db_path = config.get_database_path()
    if db_path.is_dir():
        raise ConfigurationError(
            f"Database path is a directory: {db_path}", config_key="database_path"
        )
    return db_path


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def _print_notes(engine: NotesEngine) -> None:
    for note in fetch_notes(engine):
        tags = f" [{', '.join(note.tags)}]" if note.tags else ""
        print(f"{note.id}\t{note.updated_at:%Y-%m-%d %H:%M}\t{note.title}{tags}")
        if note.preview:
            print(f"\t{note.preview}")


def run_command(engine: NotesEngine, args) -> int:
    """Execute one subcommand against an open engine."""
    if args.command == "list":
        _print_notes(engine)
    elif args.command == "add":
        note_id = engine.create(args.title, args.content).unwrap()
        print(note_id)
    elif args.command == "edit":
        title, content = args.title, args.content
        if title is None or content is None:
            current = next(
                (n for n in fetch_notes(engine) if n.id == args.note_id), None
            )
            if current is not None:
                title = current.title if title is None else title
                content = current.content if content is None else content
        engine.update(args.note_id, title or "", content or "").unwrap()
    elif args.command == "rm":
        engine.delete(args.note_id).unwrap()
    elif args.command == "tag":
        engine.set_tags(args.note_id, args.tags).unwrap()
    elif args.command == "search":
        for hit in fetch_search(engine, args.query, args.limit):
            print(f"{hit.note_id}\t{hit.rank:.3f}\t{hit.snippet}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the Noted command-line harness."""
    args = parse_args(argv)

    try:
        db_path = update_config(args)
    except ConfigurationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        log_dir = configure_logging(config.get_log_dir(), level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")
        log_dir = None

    if log_dir:
        metrics.set_metrics_file(log_dir / "metrics.json")
        atexit.register(_save_metrics_on_exit)

    result = NotesEngine.open(db_path)
    if not result.ok:
        print(f"error: {result.message}", file=sys.stderr)
        return 1
    engine = result.value

    try:
        return run_command(engine, args)
    except NotedError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
