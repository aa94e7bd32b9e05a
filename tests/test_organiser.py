"""Tests for grouping entries by folder path."""
from __future__ import annotations

from bookmark_importer.config import DEFAULT_FOLDER_PATH
from bookmark_importer.models import RawBookmarkEntry
from bookmark_importer.organiser import organise_by_folder


def _entry(title: str, path: str) -> RawBookmarkEntry:
    return RawBookmarkEntry(title=title, url=f"https://{title}.example", folder_path=path)


def test_groups_preserve_first_seen_order() -> None:
    entries = [
        _entry("a", "Work"),
        _entry("b", "Home"),
        _entry("c", "Work/Projects"),
        _entry("d", "Work"),
        _entry("e", ""),
        _entry("f", "   "),
    ]
    folder_map = organise_by_folder(entries)
    expected_paths = ["Work", "Home", "Work/Projects", DEFAULT_FOLDER_PATH]
    if folder_map.paths() != expected_paths:
        msg = f"Unexpected path order: {folder_map.paths()}"
        raise AssertionError(msg)
    work = [e.title for e in folder_map.groups["Work"]]
    if work != ["a", "d"]:
        msg = f"Entries within a group should keep source order, got {work}"
        raise AssertionError(msg)
    if [e.title for e in folder_map.groups[DEFAULT_FOLDER_PATH]] != ["e", "f"]:
        raise AssertionError("Blank folder paths should fall into the default group")


def test_invalid_entries_are_not_filtered() -> None:
    entries = [_entry("ok", "Tools"), RawBookmarkEntry(title="", url="javascript:x", folder_path="Tools")]
    folder_map = organise_by_folder(entries)
    if len(folder_map.groups["Tools"]) != 2:
        raise AssertionError("Grouping must not drop entries that fail validation later")
