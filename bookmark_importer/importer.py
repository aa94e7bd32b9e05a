"""Drive a bookmark import: parse, group, build folders, then insert in batches.

Each batch of bookmarks is committed in its own bounded transaction. A failed
batch is counted as skipped and the run moves on; only an unreadable file, an
empty export or a bad target collection abort the whole import.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .config import DEFAULT_FOLDER_PATH, PROGRESS_EVERY
from .errors import (
    BookmarkImportError,
    CollectionNotFoundError,
    EmptyImportError,
    ImportCancelledError,
    MissingTargetScopeError,
    TransactionTimeoutError,
)
from .materializer import folder_key, materialize_folders
from .models import (
    ImportOptions,
    ImportResponse,
    ImportResult,
    ProgressEvent,
    ProgressStats,
)
from .normalizer import clean_title, validate_url
from .organiser import organise_by_folder
from .parser import parse_bookmarks
from .persistence import NewBookmark

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator, Sequence

    from .models import RawBookmarkEntry
    from .persistence import PersistencePort

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

# Progress percentages at each pipeline stage.
_PARSE_STARTED = 5
_PARSE_DONE = 10
_FOLDERS_STARTED = 15
_BOOKMARKS_STARTED = 25
_BOOKMARKS_SPAN = 70

# Entries disappear once no import holds the lock.
_SCOPE_LOCKS: weakref.WeakValueDictionary[str | None, threading.Lock] = weakref.WeakValueDictionary()
_SCOPE_LOCKS_GUARD = threading.Lock()


@contextmanager
def _scope_lock(scope_id: str | None) -> Iterator[None]:
    """Serialise imports into the same scope within this process."""
    with _SCOPE_LOCKS_GUARD:
        lock = _SCOPE_LOCKS.get(scope_id)
        if lock is None:
            lock = threading.Lock()
            _SCOPE_LOCKS[scope_id] = lock
    with lock:
        yield


@dataclass(slots=True)
class _BatchTally:
    imported: int = 0
    skipped: int = 0


class BookmarkImporter:
    """Import one bookmark export into a store.

    Args:
        port: Storage the bookmarks and folders are written to.
        options: Target collection, folder handling and batch/transaction bounds.
        on_progress: Optional sink for progress events (streaming variant).
        cancel: Optional event; once set, the run stops before the next batch.

    """

    def __init__(
        self,
        port: PersistencePort,
        options: ImportOptions | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Initialise the importer."""
        self._port = port
        self._options = options or ImportOptions()
        self._on_progress = on_progress
        self._cancel = cancel
        self._last_progress = 0
        self._processed = 0
        self._total = 0

    def run(self, content: str, filename: str) -> ImportResult:
        """Import ``content`` and return the run summary.

        Raises:
            UnrecognizedFormatError: the file is neither bookmark HTML nor JSON.
            EmptyImportError: the file contains no bookmarks.
            MissingTargetScopeError: a collection is required but none was given.
            CollectionNotFoundError: the target collection does not exist.
            ImportCancelledError: ``cancel`` was set mid-run.

        """
        scope = self._check_scope()

        self._emit(_PARSE_STARTED, "Parsing file...")
        entries = parse_bookmarks(content, filename)
        if not entries:
            msg = "No bookmarks found in file"
            raise EmptyImportError(msg)
        self._total = len(entries)
        result = ImportResult(total_processed=self._total)
        self._emit(_PARSE_DONE, f"Found {self._total} bookmarks")

        folder_map = organise_by_folder(entries)
        with _scope_lock(scope):
            folder_ids: dict[str, str] = {}
            if self._options.preserve_folders:
                folder_ids = self._build_folders(folder_map.paths(), scope, result)

            self._emit(_BOOKMARKS_STARTED, "Importing bookmarks...")
            for path, group in folder_map.items():
                folder_id = None
                if path != DEFAULT_FOLDER_PATH and self._options.preserve_folders:
                    folder_id = folder_ids.get(folder_key(path))
                for batch in _chunks(group, self._options.batch_size):
                    if self._cancel is not None and self._cancel.is_set():
                        msg = "Import cancelled"
                        raise ImportCancelledError(msg)
                    self._run_batch(batch, path, folder_id, scope, result)

        LOGGER.info(
            "Import finished: %d processed, %d imported, %d skipped, %d folders created",
            result.total_processed,
            result.imported,
            result.skipped,
            result.folders_created,
        )
        return result

    def _check_scope(self) -> str | None:
        scope = self._options.target_scope
        if scope is None:
            if self._options.require_scope:
                msg = "A target collection is required"
                raise MissingTargetScopeError(msg)
            return None
        if not self._port.collection_exists(scope):
            msg = f"Collection {scope} does not exist"
            raise CollectionNotFoundError(msg)
        return scope

    def _build_folders(
        self, paths: Sequence[str], scope: str | None, result: ImportResult,
    ) -> dict[str, str]:
        self._emit(_FOLDERS_STARTED, "Creating folder structure...")
        span = _BOOKMARKS_STARTED - _FOLDERS_STARTED
        path_count = max(1, len(paths))

        def _created(name: str, created: int) -> None:
            progress = min(_BOOKMARKS_STARTED, _FOLDERS_STARTED + created * span // path_count)
            self._emit(progress, f"Created folder: {name}")

        outcome = materialize_folders(paths, scope, self._port, on_created=_created)
        result.folders_created = outcome.created
        for error in outcome.errors:
            result.add_error(error)
        return outcome.folder_ids

    def _run_batch(
        self,
        batch: Sequence[RawBookmarkEntry],
        path: str,
        folder_id: str | None,
        scope: str | None,
        result: ImportResult,
    ) -> None:
        tally = _BatchTally()
        notes: list[str] = []
        processed_before = self._processed
        description = f"From {path}" if path != DEFAULT_FOLDER_PATH else None

        def _work(tx: PersistencePort) -> None:
            for entry in batch:
                self._import_one(tx, entry, description, folder_id, scope, result, tally, notes)
                self._processed += 1
                if self._processed % PROGRESS_EVERY == 0:
                    self._checkpoint(result, tally)

        try:
            self._port.run_in_transaction(
                _work, max_wait=self._options.max_wait, timeout=self._options.timeout,
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Batch of %d bookmarks in %r failed: %s", len(batch), path, exc)
            self._processed = processed_before + len(batch)
            result.skipped += len(batch)
            result.add_error(f"Batch of {len(batch)} bookmarks in {path} failed")
            return

        result.imported += tally.imported
        result.skipped += tally.skipped
        for note in notes:
            result.add_error(note)

    def _import_one(  # noqa: PLR0913
        self,
        tx: PersistencePort,
        entry: RawBookmarkEntry,
        description: str | None,
        folder_id: str | None,
        scope: str | None,
        result: ImportResult,
        tally: _BatchTally,
        notes: list[str],
    ) -> None:
        url = validate_url(entry.url)
        if url is None:
            tally.skipped += 1
            notes.append(f"Invalid URL: {entry.url}")
            return
        title = clean_title(entry.title)
        if not title:
            tally.skipped += 1
            notes.append(f"Invalid title: {entry.title!r}")
            return
        try:
            if tx.find_bookmark_by_url(url, scope) is not None:
                tally.skipped += 1
                return
            tx.create_bookmark(
                NewBookmark(
                    title=title,
                    url=url,
                    sort_order=result.imported + tally.imported,
                    description=description,
                    icon=entry.icon,
                    folder_id=folder_id,
                    collection_id=scope,
                ),
            )
        except TransactionTimeoutError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to import %s: %s", url, exc)
            tally.skipped += 1
            notes.append(f"Import failed: {title}")
            return
        tally.imported += 1

    def _checkpoint(self, result: ImportResult, tally: _BatchTally) -> None:
        if self._on_progress is None:
            return
        progress = _BOOKMARKS_STARTED + round(self._processed / self._total * _BOOKMARKS_SPAN)
        stats = ProgressStats(
            processed=self._processed,
            imported=result.imported + tally.imported,
            skipped=result.skipped + tally.skipped,
        )
        self._emit(progress, f"Processed {self._processed}/{self._total} bookmarks", stats)

    def _emit(self, progress: int, message: str, stats: ProgressStats | None = None) -> None:
        if self._on_progress is None:
            return
        self._last_progress = max(self._last_progress, progress)
        event = ProgressEvent(
            type="progress", message=message, progress=self._last_progress, stats=stats,
        )
        try:
            self._on_progress(event)
        except Exception:  # noqa: BLE001
            LOGGER.debug("Progress sink rejected event %r", message, exc_info=True)


def _chunks(
    items: Sequence[RawBookmarkEntry], size: int,
) -> Iterator[Sequence[RawBookmarkEntry]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def import_bookmarks(
    content: str,
    filename: str,
    port: PersistencePort,
    options: ImportOptions | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> ImportResult:
    """Import a bookmark export held in memory."""
    importer = BookmarkImporter(port, options, on_progress=on_progress, cancel=cancel)
    return importer.run(content, filename)


def import_file(
    path: Path | str,
    port: PersistencePort,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Import a bookmark export from disk."""
    file_path = Path(path)
    content = file_path.read_text(encoding="utf-8", errors="replace")
    return import_bookmarks(content, file_path.name, port, options)


def run_import_response(
    content: str,
    filename: str,
    port: PersistencePort,
    options: ImportOptions | None = None,
) -> ImportResponse:
    """Request/response variant: never raises, always returns an envelope."""
    try:
        result = import_bookmarks(content, filename, port, options)
    except BookmarkImportError as exc:
        LOGGER.warning("Import of %s rejected: %s", filename, exc)
        return ImportResponse(success=False, error=str(exc))
    except Exception:  # noqa: BLE001
        LOGGER.exception("Import of %s failed", filename)
        return ImportResponse(success=False, error="Import failed")
    return ImportResponse(success=True, data=result.to_model())
