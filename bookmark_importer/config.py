"""Global configuration constants for bookmark importer."""

from __future__ import annotations

# Pseudo folder path for bookmarks that sit outside any folder.
# Never materialised; bookmarks under it attach to the collection root.
DEFAULT_FOLDER_PATH: str = "default collection"

# Titles are cut to this many characters after whitespace cleanup.
MAX_TITLE_LENGTH: int = 200

# Only the first N error notes are returned to the caller.
MAX_REPORTED_ERRORS: int = 10

# Schemes that are never imported, matched case-insensitively as prefixes.
UNSAFE_URL_PREFIXES: tuple[str, ...] = ("javascript:", "data:", "mailto:", "tel:", "file:")

# Default number of bookmarks committed per transaction.
DEFAULT_BATCH_SIZE: int = 20

# Transaction bounds in seconds (wait to acquire, max duration).
DEFAULT_MAX_WAIT: float = 20.0
DEFAULT_TIMEOUT: float = 30.0
STREAM_MAX_WAIT: float = 8.0
STREAM_TIMEOUT: float = 12.0

# Streaming variant emits a progress event after every N processed bookmarks.
PROGRESS_EVERY: int = 5

# Reachability probing.
REACHABILITY_TIMEOUT: float = 10.0
REACHABILITY_WORKERS: int = 12
