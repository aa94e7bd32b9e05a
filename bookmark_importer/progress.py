"""Streaming variant of the import: progress pushed as server-sent-event frames."""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING

from .config import STREAM_MAX_WAIT, STREAM_TIMEOUT
from .errors import BookmarkImportError, ImportCancelledError
from .importer import import_bookmarks
from .models import ImportOptions, ProgressEvent

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Generator, Iterator

    from .persistence import PersistencePort

LOGGER = logging.getLogger(__name__)

EVENT_STREAM_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class ProgressChannel:
    """One-way, unbounded FIFO of progress events from the import worker to a reader.

    ``publish`` never blocks; the reader drains events with :meth:`events` until
    the producer calls :meth:`close`.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        """Initialise an open, empty channel."""
        self._queue: queue.Queue[object] = queue.Queue()

    def publish(self, event: ProgressEvent) -> None:
        """Queue an event for the reader."""
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Mark the end of the stream."""
        self._queue.put_nowait(self._CLOSED)

    def events(self) -> Iterator[ProgressEvent]:
        """Yield events in publish order until the channel is closed."""
        while True:
            item = self._queue.get()
            if item is self._CLOSED:
                return
            if isinstance(item, ProgressEvent):
                yield item


def stream_import_events(
    content: str,
    filename: str,
    port: PersistencePort,
    options: ImportOptions | None = None,
    cancel: threading.Event | None = None,
) -> Generator[ProgressEvent, None, None]:
    """Run an import on a worker thread and yield its progress events.

    The last event is always ``complete`` or ``error``. Closing the generator
    early (the client went away) sets ``cancel`` so the worker stops at the next
    batch boundary, and waits for the batch in flight to finish.

    Unless ``options`` sets them explicitly, transactions use the streaming
    bounds (``STREAM_MAX_WAIT`` and ``STREAM_TIMEOUT``).
    """
    run_options = _with_stream_bounds(options)
    stop = cancel or threading.Event()
    channel = ProgressChannel()

    def _run() -> None:
        try:
            result = import_bookmarks(
                content, filename, port, run_options, on_progress=channel.publish, cancel=stop,
            )
        except ImportCancelledError:
            LOGGER.info("Streaming import of %s cancelled", filename)
            channel.publish(ProgressEvent(type="error", message="Import cancelled"))
        except BookmarkImportError as exc:
            LOGGER.warning("Streaming import of %s rejected: %s", filename, exc)
            channel.publish(ProgressEvent(type="error", message=str(exc)))
        except Exception:  # noqa: BLE001
            LOGGER.exception("Streaming import of %s failed", filename)
            channel.publish(ProgressEvent(type="error", message="Import failed"))
        else:
            channel.publish(
                ProgressEvent(
                    type="complete",
                    message="Import complete!",
                    progress=100,
                    result=result.to_model(),
                ),
            )
        finally:
            channel.close()

    worker = threading.Thread(target=_run, name="bookmark-import", daemon=True)
    worker.start()
    try:
        yield from channel.events()
    finally:
        if worker.is_alive():
            LOGGER.debug("Progress reader detached; requesting cancellation")
            stop.set()
        # At most one batch is still in flight once cancellation is requested.
        worker.join(timeout=run_options.max_wait + run_options.timeout)
        if worker.is_alive():
            LOGGER.warning("Import worker for %s still running after cancellation", filename)


def stream_import(
    content: str,
    filename: str,
    port: PersistencePort,
    options: ImportOptions | None = None,
    cancel: threading.Event | None = None,
) -> Iterator[str]:
    """Same as :func:`stream_import_events`, rendered as ``data: <json>\\n\\n`` frames."""
    events = stream_import_events(content, filename, port, options, cancel)
    try:
        for event in events:
            yield event.to_frame()
    finally:
        events.close()


def _with_stream_bounds(options: ImportOptions | None) -> ImportOptions:
    """Apply the shorter streaming transaction bounds unless the caller chose their own."""
    if options is None:
        return ImportOptions(max_wait=STREAM_MAX_WAIT, timeout=STREAM_TIMEOUT)
    update: dict[str, float] = {}
    if "max_wait" not in options.model_fields_set:
        update["max_wait"] = STREAM_MAX_WAIT
    if "timeout" not in options.model_fields_set:
        update["timeout"] = STREAM_TIMEOUT
    return options.model_copy(update=update) if update else options
