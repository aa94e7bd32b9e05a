"""Group parsed bookmark entries by the folder they were exported from."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import DEFAULT_FOLDER_PATH
from .models import FolderPathMap

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

    from .models import RawBookmarkEntry

LOGGER = logging.getLogger(__name__)


def organise_by_folder(entries: Iterable[RawBookmarkEntry]) -> FolderPathMap:
    """Group entries by folder path, keeping paths in first-seen order.

    No validation happens here; a bad bookmark must not take its folder down with it.
    """
    folder_map = FolderPathMap()
    for entry in entries:
        path = entry.folder_path.strip() if entry.folder_path else ""
        folder_map.add(path or DEFAULT_FOLDER_PATH, entry)
    LOGGER.debug("Organised entries into %d folder paths", len(folder_map))
    return folder_map
