"""Data models for the bookmark import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from attrs import Factory, define
from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FOLDER_PATH,
    DEFAULT_MAX_WAIT,
    DEFAULT_TIMEOUT,
    MAX_REPORTED_ERRORS,
)

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator
    from datetime import datetime


def _empty_str_list() -> list[str]:
    return []


@dataclass(slots=True)
class RawBookmarkEntry:
    """Bookmark entry captured from a browser export, before any cleanup."""

    title: str
    url: str
    folder_path: str = DEFAULT_FOLDER_PATH
    icon: str | None = None
    added_at: datetime | None = None


@dataclass(slots=True)
class ImportResult:
    """Counters and error sample for a single import run."""

    total_processed: int = 0
    imported: int = 0
    skipped: int = 0
    folders_created: int = 0
    errors: list[str] = field(default_factory=_empty_str_list)

    def add_error(self, message: str) -> None:
        """Record an error note, keeping only the first few."""
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)

    def to_model(self) -> ImportResultModel:
        """Convert the result into a serialisable pydantic model."""
        return ImportResultModel(
            total_processed=self.total_processed,
            imported=self.imported,
            skipped=self.skipped,
            folders_created=self.folders_created,
            errors=self.errors[:MAX_REPORTED_ERRORS],
        )


@define(slots=True, init=False)
class FolderPathMap:
    """Bookmarks grouped by folder path, in first-seen path order."""

    groups: dict[str, list[RawBookmarkEntry]] = Factory(dict)

    def __init__(self) -> None:
        """Initialise an empty map."""
        self.groups = {}

    def add(self, path: str, entry: RawBookmarkEntry) -> None:
        """Append an entry under the given path, creating the group if needed."""
        self.groups.setdefault(path, []).append(entry)

    def paths(self) -> list[str]:
        """Return distinct paths in encounter order."""
        return list(self.groups)

    def items(self) -> Iterator[tuple[str, list[RawBookmarkEntry]]]:
        """Iterate over (path, entries) pairs in encounter order."""
        yield from self.groups.items()

    def __len__(self) -> int:
        """Return the number of distinct paths."""
        return len(self.groups)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportResultModel(_CamelModel):
    """Pydantic model for the import summary sent back to callers."""

    total_processed: int = 0
    imported: int = 0
    skipped: int = 0
    folders_created: int = 0
    errors: list[str] = Field(default_factory=list)


class ProgressStats(BaseModel):
    """Running counters attached to checkpoint progress events."""

    processed: int
    imported: int
    skipped: int


class ProgressEvent(BaseModel):
    """A single event on the streaming progress channel."""

    type: Literal["progress", "complete", "error"]
    message: str
    progress: int | None = None
    stats: ProgressStats | None = None
    result: ImportResultModel | None = None

    def to_frame(self) -> str:
        """Render the event as a server-sent-events ``data:`` frame."""
        payload = self.model_dump_json(exclude_none=True, by_alias=True)
        return f"data: {payload}\n\n"


class ImportResponse(BaseModel):
    """Envelope returned by the request/response variant."""

    success: bool
    data: ImportResultModel | None = None
    error: str | None = None


class ImportOptions(BaseModel):
    """Per-run options supplied by the caller."""

    target_scope: str | None = None
    preserve_folders: bool = True
    require_scope: bool = False
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    max_wait: float = Field(default=DEFAULT_MAX_WAIT, gt=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    @field_validator("target_scope", mode="before")
    @classmethod
    def _blank_scope_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


# --- JSON export dialects ------------------------------------------------------------------


class BookmarkNodeModel(BaseModel):
    """One node of a browser bookmark tree (link or folder)."""

    model_config = ConfigDict(extra="ignore")

    type: str = ""
    name: str | None = None
    title: str | None = None
    url: str | None = None
    icon: str | None = None
    date_added: int | str | None = None
    add_date: int | str | None = Field(default=None, alias="addDate")
    children: list[BookmarkNodeModel] | None = None

    @property
    def label(self) -> str:
        """Display name, whichever spelling the exporter used."""
        return (self.name or self.title or "").strip()

    @property
    def timestamp(self) -> int | str | None:
        """Raw add-date, whichever spelling the exporter used."""
        return self.date_added if self.date_added is not None else self.add_date

    @property
    def is_link(self) -> bool:
        """True for link nodes (``url`` in Chrome, ``link`` in collection exports)."""
        return self.type in {"url", "link"} and bool(self.url)

    @property
    def is_folder(self) -> bool:
        """True for folder nodes that carry children."""
        return self.type == "folder" and self.children is not None


BookmarkNodeModel.model_rebuild()


class ChromeRootsTree(BaseModel):
    """Chrome's native export: ``{version, roots: {bookmark_bar: ..., other: ...}}``."""

    model_config = ConfigDict(extra="ignore")

    roots: dict[str, BookmarkNodeModel]

    @field_validator("roots", mode="before")
    @classmethod
    def _drop_non_node_roots(cls, value: Any) -> Any:
        # Chrome keeps bookkeeping scalars next to the real roots.
        if isinstance(value, dict):
            return {key: raw for key, raw in value.items() if isinstance(raw, dict)}
        return value

    def root_nodes(self) -> Iterator[tuple[str, BookmarkNodeModel]]:
        """Yield ``(root key, node)`` pairs in export order."""
        yield from self.roots.items()


class FlatNodeArray(RootModel[list[BookmarkNodeModel]]):
    """Bare array of bookmark nodes treated as the children of an unnamed root."""


class PrecomputedFolder(BaseModel):
    """Folder row of a collection export; ``parentId`` names the parent folder."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    icon: str | None = None
    add_date: int | str | None = Field(default=None, alias="addDate")
    parent_id: str | None = Field(default=None, alias="parentId")


class PrecomputedBookmark(BaseModel):
    """Bookmark row of a collection export; ``folderId`` names its folder."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    url: str
    icon: str | None = None
    add_date: int | str | None = Field(default=None, alias="addDate")
    folder_id: str | None = Field(default=None, alias="folderId")


class PrecomputedFolderBookmarkLists(BaseModel):
    """Collection export: ``{name, folders: [...], bookmarks: [...]}``."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    folders: list[PrecomputedFolder] = Field(default_factory=list)
    bookmarks: list[PrecomputedBookmark] = Field(default_factory=list)


JsonDialect = ChromeRootsTree | FlatNodeArray | PrecomputedFolderBookmarkLists
