"""Parse browser bookmark exports (Netscape HTML or JSON) into flat entry lists."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from .config import DEFAULT_FOLDER_PATH
from .errors import UnrecognizedFormatError
from .models import (
    BookmarkNodeModel,
    ChromeRootsTree,
    FlatNodeArray,
    JsonDialect,
    PrecomputedFolderBookmarkLists,
    RawBookmarkEntry,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator, Sequence

    from bs4.element import PageElement

LOGGER = logging.getLogger(__name__)

UNTITLED_FOLDER = "Untitled folder"
UNTITLED_BOOKMARK = "Untitled bookmark"

_JSON_EXTENSIONS = {"json"}
_HTML_EXTENSIONS = {"html", "htm"}

# Seconds between 1601-01-01 (WebKit epoch) and 1970-01-01.
_WEBKIT_EPOCH_OFFSET = 11_644_473_600
_SECONDS_MAX_DIGITS = 10
_WEBKIT_MIN_DIGITS = 16


def parse_bookmarks(content: str, filename: str) -> list[RawBookmarkEntry]:
    """Detect the export format and parse it into raw entries."""
    fmt = detect_format(content, filename)
    LOGGER.debug("Parsing %s as %s bookmark export", filename, fmt)
    if fmt == "json":
        entries = parse_bookmarks_json(content)
    else:
        entries = parse_bookmarks_html(content)
    LOGGER.info("Extracted %d bookmark entries from %s", len(entries), filename)
    return entries


def detect_format(content: str, filename: str) -> str:
    """Return ``"json"`` or ``"html"`` from the extension, falling back to sniffing."""
    extension = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    if extension in _JSON_EXTENSIONS:
        return "json"
    if extension in _HTML_EXTENSIONS:
        return "html"

    head = content.lstrip("\ufeff").lstrip()
    if head.startswith(("{", "[")):
        return "json"
    lowered = head[:64].lower()
    if lowered.startswith(("<!doctype", "<html")):
        return "html"
    msg = f"Unrecognised bookmark file format: {filename or '<unnamed>'}"
    raise UnrecognizedFormatError(msg)


# --- HTML ----------------------------------------------------------------------------------


def parse_bookmarks_html(content: str) -> list[RawBookmarkEntry]:
    """Walk a Netscape bookmark document, attributing anchors to their enclosing folders.

    A folder is an ``<H3>`` followed by the ``<DL>`` holding its contents. The
    ``<DL>`` may sit inside the same ``<DT>`` as the header or right after it,
    depending on how forgiving the HTML parser is about unclosed ``<DT>`` tags.
    A document without any ``<DL>`` holds no bookmarks.
    """
    soup = BeautifulSoup(content, "html.parser")
    if soup.find("dl") is None:
        LOGGER.warning("Bookmark export has no <DL> list; treating it as empty")
        return []

    entries: list[RawBookmarkEntry] = []
    _walk_html(soup, entries)
    return entries


def _walk_html(root: Tag, out: list[RawBookmarkEntry]) -> None:
    """Collect anchors below ``root`` in document order.

    ``html.parser`` leaves ``<DT>`` and ``<p>`` unclosed, so every sibling entry
    nests one level deeper than the one before it. The walk keeps its own stack
    of open elements; only ``<DL>`` frames change the folder path.
    """
    # Frame: (remaining children, folder path, opened by a <DL>)
    stack: list[tuple[Iterator[PageElement], list[str], bool]] = [(iter(root.children), [], False)]
    pending: str | None = None
    while stack:
        children, path, is_list = stack[-1]
        child = next((node for node in children if isinstance(node, Tag)), None)
        if child is None:
            stack.pop()
            if is_list:
                pending = None
            continue
        name = (child.name or "").lower()
        if name == "h3":
            pending = child.get_text(strip=True) or UNTITLED_FOLDER
        elif name == "a":
            pending = None
            entry = _entry_from_anchor(child, path)
            if entry is not None:
                out.append(entry)
        elif name == "dl":
            inner = [*path, pending] if pending is not None else path
            pending = None
            stack.append((iter(child.children), inner, True))
        else:
            stack.append((iter(child.children), path, False))


def _entry_from_anchor(anchor: Tag, path: Sequence[str]) -> RawBookmarkEntry | None:
    href_value = anchor.get("href")
    if not isinstance(href_value, str):
        LOGGER.debug("Skipping anchor without textual href")
        return None

    href = href_value.strip()
    if not href or href.lower().startswith("javascript:"):
        LOGGER.debug("Skipping anchor with empty or script href")
        return None

    icon = anchor.get("icon")
    add_date = anchor.get("add_date")
    return RawBookmarkEntry(
        title=anchor.get_text(strip=True),
        url=href,
        folder_path=_join_path(path),
        icon=icon if isinstance(icon, str) and icon else None,
        added_at=convert_timestamp(add_date) if isinstance(add_date, str) else None,
    )


# --- JSON ----------------------------------------------------------------------------------


def parse_bookmarks_json(content: str) -> list[RawBookmarkEntry]:
    """Decode a JSON export and flatten whichever dialect it turns out to be."""
    try:
        data: object = json.loads(content.lstrip("\ufeff"))
    except json.JSONDecodeError as exc:
        msg = f"Bookmark JSON could not be decoded: {exc}"
        raise UnrecognizedFormatError(msg) from exc

    dialect = classify_json(data)
    entries: list[RawBookmarkEntry] = []
    if isinstance(dialect, ChromeRootsTree):
        for key, root in dialect.root_nodes():
            root_name = root.label or key
            for child in root.children or []:
                _walk_node(child, root_name, entries)
    elif isinstance(dialect, FlatNodeArray):
        for node in dialect.root:
            _walk_node(node, "", entries)
    else:
        entries.extend(_flatten_precomputed(dialect))
    return entries


def classify_json(data: object) -> JsonDialect:
    """Decode parsed JSON into exactly one of the supported export dialects."""
    try:
        if isinstance(data, dict) and "roots" in data:
            return ChromeRootsTree.model_validate(data)
        if isinstance(data, dict) and "folders" in data:
            return PrecomputedFolderBookmarkLists.model_validate(data)
        if isinstance(data, list):
            return FlatNodeArray.model_validate(data)
    except ValidationError as exc:
        msg = f"Bookmark JSON has an unexpected shape: {exc.error_count()} validation error(s)"
        raise UnrecognizedFormatError(msg) from exc
    msg = "Bookmark JSON is neither a Chrome export, a node array nor a collection export"
    raise UnrecognizedFormatError(msg)


def _walk_node(node: BookmarkNodeModel, path: str, out: list[RawBookmarkEntry]) -> None:
    if node.is_link:
        out.append(
            RawBookmarkEntry(
                title=node.label or UNTITLED_BOOKMARK,
                url=node.url or "",
                folder_path=path or DEFAULT_FOLDER_PATH,
                icon=node.icon or None,
                added_at=convert_timestamp(node.timestamp) if node.timestamp else None,
            ),
        )
    elif node.is_folder:
        label = node.label or UNTITLED_FOLDER
        child_path = f"{path}/{label}" if path else label
        for child in node.children or []:
            _walk_node(child, child_path, out)


def _flatten_precomputed(data: PrecomputedFolderBookmarkLists) -> list[RawBookmarkEntry]:
    parents = {folder.name: folder.parent_id for folder in data.folders}

    def _path_for(name: str) -> str:
        segments: list[str] = []
        seen: set[str] = set()
        current: str | None = name
        while current and current not in seen:
            seen.add(current)
            segments.append(current)
            current = parents.get(current)
        if current:
            LOGGER.warning("Folder parent chain for %r loops back to %r; cut", name, current)
        segments.reverse()
        return "/".join(segments)

    entries: list[RawBookmarkEntry] = []
    for bookmark in data.bookmarks:
        folder = bookmark.folder_id
        entries.append(
            RawBookmarkEntry(
                title=bookmark.title,
                url=bookmark.url,
                folder_path=_path_for(folder) if folder else DEFAULT_FOLDER_PATH,
                icon=bookmark.icon or None,
                added_at=convert_timestamp(bookmark.add_date) if bookmark.add_date else None,
            ),
        )
    return entries


# --- helpers -------------------------------------------------------------------------------


def _join_path(segments: Sequence[str]) -> str:
    return "/".join(segments) if segments else DEFAULT_FOLDER_PATH


def convert_timestamp(value: object) -> datetime:
    """Convert an export timestamp to an aware datetime; anything invalid becomes now.

    Values of up to 10 digits are epoch seconds, 16 digits or more are WebKit
    microseconds since 1601 (Chrome), anything in between is epoch milliseconds.
    """
    now = datetime.now(tz=timezone.utc)
    try:
        number = int(float(str(value).strip()))
        if number <= 0:
            return now
        digits = len(str(number))
        if digits <= _SECONDS_MAX_DIGITS:
            seconds = float(number)
        elif digits >= _WEBKIT_MIN_DIGITS:
            seconds = number / 1_000_000 - _WEBKIT_EPOCH_OFFSET
        else:
            seconds = number / 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return now
