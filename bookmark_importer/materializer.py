"""Find-or-create the folder hierarchy described by slash-delimited folder paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .config import DEFAULT_FOLDER_PATH
from .errors import FolderConflictError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable

    from .persistence import PersistencePort

LOGGER = logging.getLogger(__name__)


def _empty_str_list() -> list[str]:
    return []


def _empty_id_map() -> dict[str, str]:
    return {}


@dataclass(slots=True)
class FolderMaterialization:
    """Outcome of materialising a set of folder paths."""

    folder_ids: dict[str, str] = field(default_factory=_empty_id_map)
    created: int = 0
    errors: list[str] = field(default_factory=_empty_str_list)


def split_path(path: str) -> list[str]:
    """Split a folder path into its non-empty, trimmed segments."""
    return [segment.strip() for segment in path.split("/") if segment.strip()]


def materialize_folders(
    paths: Iterable[str],
    scope_id: str | None,
    port: PersistencePort,
    on_created: Callable[[str, int], None] | None = None,
) -> FolderMaterialization:
    """Resolve every path to a folder id, reusing existing folders where possible.

    Paths are walked segment by segment, parents before children. Each segment is
    looked up by ``(name, parent, scope)`` and only created when missing, so
    repeating an import never duplicates folders. A segment that cannot be found
    or created abandons the rest of its path; the other paths carry on.

    ``on_created`` is called with ``(segment name, folders created so far)`` after
    every new folder.
    """
    outcome = FolderMaterialization()
    for path in paths:
        if path == DEFAULT_FOLDER_PATH:
            continue
        current_path = ""
        parent_id: str | None = None
        for segment in split_path(path):
            current_path = f"{current_path}/{segment}" if current_path else segment
            known = outcome.folder_ids.get(current_path)
            if known is not None:
                parent_id = known
                continue
            try:
                folder_id, created = _find_or_create(port, segment, parent_id, scope_id)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to materialise folder %r (%s): %s", segment, path, exc)
                outcome.errors.append(f"Failed to create folder: {segment}")
                break
            outcome.folder_ids[current_path] = folder_id
            parent_id = folder_id
            if created:
                outcome.created += 1
                LOGGER.debug("Created folder %s -> %s", current_path, folder_id)
                if on_created is not None:
                    on_created(segment, outcome.created)

    LOGGER.info(
        "Materialised %d folder paths (%d new folders)",
        len(outcome.folder_ids),
        outcome.created,
    )
    return outcome


def _find_or_create(
    port: PersistencePort,
    name: str,
    parent_id: str | None,
    scope_id: str | None,
) -> tuple[str, bool]:
    existing = port.find_folder(name, parent_id, scope_id)
    if existing is not None:
        return existing.id, False
    try:
        folder = port.create_folder(name, parent_id, scope_id)
    except FolderConflictError:
        # Another import created it between our lookup and insert.
        winner = port.find_folder(name, parent_id, scope_id)
        if winner is None:
            raise
        return winner.id, False
    return folder.id, True


def folder_key(path: str) -> str:
    """Canonical form of a folder path, as used for keys in ``folder_ids``."""
    return "/".join(split_path(path))
