"""CLI entry point for bookmark importer tool.

Imports a browser bookmark export (Netscape HTML or JSON) into the bookmark
database, either as a single request/response run or as a stream of progress
frames, and can optionally probe the imported links for reachability.
"""

from __future__ import annotations

# Standard library imports (alphabetical within groups)
import argparse
import logging
import os
import sys
from pathlib import Path

# Third-party imports
from dotenv import load_dotenv
from pydantic import ValidationError

# Internal imports
from bookmark_importer.config import DEFAULT_BATCH_SIZE
from bookmark_importer.importer import run_import_response
from bookmark_importer.models import ImportOptions
from bookmark_importer.normalizer import validate_url
from bookmark_importer.parser import parse_bookmarks
from bookmark_importer.persistence import SqlAlchemyStore
from bookmark_importer.progress import stream_import_events
from bookmark_importer.reachability import check_reachability

STAGES: dict[int, str] = {
    1: "Prepare database",
    2: "Import bookmarks",
    3: "Check link reachability",
}

DEFAULT_DATABASE_URL = "sqlite:///bookmarks.db"


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging (debug when verbose)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def log_stage(stage_number: int, message: str, *args: object) -> None:
    """Log a message prefixed with a stage label."""
    stage_label = STAGES.get(stage_number, f"Stage {stage_number}")
    logger = logging.getLogger("bookmark_importer")
    logger.info("[%s] %s", stage_label, message % args if args else message)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import browser bookmark exports")
    parser.add_argument(
        "--input",
        help=(
            "Path to the exported bookmarks file (.html/.htm/.json). If omitted, the"
            " environment variable BOOKMARKS_IMPORT_FILE is used."
        ),
    )
    parser.add_argument(
        "--database",
        help=(
            "SQLAlchemy database URL. Defaults to BOOKMARKS_DATABASE_URL or"
            f" {DEFAULT_DATABASE_URL}."
        ),
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--collection", help="Id of the collection to import into")
    scope.add_argument(
        "--create-collection",
        metavar="NAME",
        help="Create a new collection with this name and import into it",
    )
    parser.add_argument(
        "--require-collection",
        action="store_true",
        help="Refuse to import without a target collection",
    )
    parser.add_argument(
        "--flatten",
        action="store_true",
        help="Ignore the export's folder structure and attach every bookmark to the root",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help="Bookmarks committed per transaction",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Print progress as server-sent-event frames instead of a single JSON result",
    )
    parser.add_argument(
        "--check-links",
        action="store_true",
        help="After importing, probe every valid URL in the export with a HEAD request",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)
    if args.batch_size < 1:
        parser.error("--batch-size must be at least 1")
    return args


def _resolve_input(path_arg: str | None) -> Path:
    resolved = path_arg or os.getenv("BOOKMARKS_IMPORT_FILE")
    if not resolved:
        msg = "No input file provided. Supply --input or set BOOKMARKS_IMPORT_FILE in env."
        raise SystemExit(msg)
    path = Path(resolved)
    if not path.exists():
        msg = f"Bookmark export not found: {path}"
        raise SystemExit(msg)
    return path


def _prepare_store(args: argparse.Namespace) -> tuple[SqlAlchemyStore, str | None]:
    database_url = args.database or os.getenv("BOOKMARKS_DATABASE_URL") or DEFAULT_DATABASE_URL
    log_stage(1, "Using database %s", database_url)
    store = SqlAlchemyStore.from_url(database_url)
    scope = args.collection
    if args.create_collection:
        scope = store.create_collection(args.create_collection).id
        log_stage(1, "Importing into new collection %s", scope)
    return store, scope


def _build_options(args: argparse.Namespace, scope: str | None) -> ImportOptions:
    # Streaming runs pick up their shorter transaction bounds in stream_import_events.
    try:
        return ImportOptions(
            target_scope=scope,
            preserve_folders=not args.flatten,
            require_scope=args.require_collection,
            batch_size=args.batch_size,
        )
    except ValidationError as exc:
        msg = f"Invalid import options: {exc}"
        raise SystemExit(msg) from exc


def _run_stream(
    content: str, filename: str, store: SqlAlchemyStore, options: ImportOptions,
) -> bool:
    last_type = ""
    for event in stream_import_events(content, filename, store, options):
        sys.stdout.write(event.to_frame())
        sys.stdout.flush()
        last_type = event.type
    return last_type == "complete"


def _run_single(
    content: str, filename: str, store: SqlAlchemyStore, options: ImportOptions,
) -> bool:
    response = run_import_response(content, filename, store, options)
    sys.stdout.write(response.model_dump_json(indent=2, exclude_none=True, by_alias=True) + "\n")
    return response.success


def _check_links(content: str, filename: str) -> None:
    urls: list[str] = []
    seen: set[str] = set()
    for entry in parse_bookmarks(content, filename):
        url = validate_url(entry.url)
        if url and url not in seen:
            seen.add(url)
            urls.append(url)
    log_stage(3, "Probing %d links", len(urls))
    report = check_reachability(urls)
    for item in report.results:
        if not item.valid:
            log_stage(3, "Unreachable (%s): %s %s", item.status, item.url, item.error or "")
    log_stage(3, "%d of %d links reachable", report.valid, report.total)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the bookmark importer CLI."""
    load_dotenv()
    args = _parse_args(argv)
    configure_logging(verbose=args.verbose)
    input_path = _resolve_input(args.input)
    store, scope = _prepare_store(args)
    options = _build_options(args, scope)

    content = input_path.read_text(encoding="utf-8", errors="replace")
    log_stage(2, "Importing %s", input_path)
    if args.stream:
        succeeded = _run_stream(content, input_path.name, store, options)
    else:
        succeeded = _run_single(content, input_path.name, store, options)

    if succeeded and args.check_links:
        _check_links(content, input_path.name)
    return 0 if succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
