"""Exceptions raised by the bookmark import pipeline."""

from __future__ import annotations


class BookmarkImportError(RuntimeError):
    """Base class for import failures that abort the whole run."""


class UnrecognizedFormatError(BookmarkImportError):
    """Raised when an upload is neither a bookmark HTML nor a bookmark JSON export."""


class EmptyImportError(BookmarkImportError):
    """Raised when parsing yields no bookmark entries."""


class MissingTargetScopeError(BookmarkImportError):
    """Raised when the deployment requires a target collection and none was given."""


class CollectionNotFoundError(BookmarkImportError):
    """Raised when the target collection does not exist."""


class TransactionTimeoutError(RuntimeError):
    """Raised when a batch transaction exceeds its wait or duration bound."""


class FolderConflictError(RuntimeError):
    """Raised when creating a folder collides with one created concurrently."""


class ImportCancelledError(BookmarkImportError):
    """Raised between batches once the caller has asked the run to stop."""
