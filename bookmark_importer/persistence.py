"""Relational storage for collections, folders and bookmarks.

The import pipeline only talks to :class:`PersistencePort`. :class:`SqlAlchemyStore`
is the production implementation; callers build one per process and pass it in.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import FolderConflictError, TransactionTimeoutError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from sqlalchemy.engine import Engine
    from sqlalchemy.sql.elements import ColumnElement

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for the bookmark schema."""


class Collection(Base):
    """Top-level grouping; the scope for folder and URL uniqueness."""

    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Folder(Base):
    """Folder inside a collection, optionally nested under another folder."""

    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("collection_id", "parent_id", "name", name="uq_folders_scope_parent_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    collection_id: Mapped[str | None] = mapped_column(
        ForeignKey("collections.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Bookmark(Base):
    """Saved link."""

    __tablename__ = "bookmarks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    folder_id: Mapped[str | None] = mapped_column(
        ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    collection_id: Mapped[str | None] = mapped_column(
        ForeignKey("collections.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


@dataclass(slots=True)
class NewBookmark:
    """Field set for a bookmark about to be created."""

    title: str
    url: str
    sort_order: int
    description: str | None = None
    icon: str | None = None
    folder_id: str | None = None
    collection_id: str | None = None
    is_featured: bool = False


class PersistencePort(Protocol):
    """Operations the import pipeline needs from storage."""

    def collection_exists(self, scope_id: str) -> bool: ...

    def find_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder | None: ...

    def create_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder: ...

    def find_bookmark_by_url(self, url: str, scope_id: str | None) -> Bookmark | None: ...

    def create_bookmark(self, fields: NewBookmark) -> Bookmark: ...

    def run_in_transaction(
        self,
        work: Callable[[PersistencePort], T],
        *,
        max_wait: float,
        timeout: float,
    ) -> T: ...


def _matches(column: Any, value: str | None) -> ColumnElement[bool]:
    return column.is_(None) if value is None else column == value


class _SessionPort:
    """Port operations bound to one open session, optionally under a deadline."""

    def __init__(self, session: Session, deadline: float | None = None) -> None:
        self._session = session
        self._deadline = deadline

    def check_deadline(self) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            msg = "Transaction exceeded its time budget"
            raise TransactionTimeoutError(msg)

    def _insert(self, row: Folder | Bookmark) -> None:
        # Savepoint per row: a rejected insert rolls back alone and the
        # rows written before it in the same transaction survive.
        with self._session.begin_nested():
            self._session.add(row)

    def collection_exists(self, scope_id: str) -> bool:
        self.check_deadline()
        return self._session.get(Collection, scope_id) is not None

    def find_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder | None:
        self.check_deadline()
        stmt = (
            select(Folder)
            .where(
                Folder.name == name,
                _matches(Folder.parent_id, parent_id),
                _matches(Folder.collection_id, scope_id),
            )
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def create_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder:
        self.check_deadline()
        folder = Folder(name=name, parent_id=parent_id, collection_id=scope_id, sort_order=0)
        self._insert(folder)
        return folder

    def find_bookmark_by_url(self, url: str, scope_id: str | None) -> Bookmark | None:
        self.check_deadline()
        stmt = (
            select(Bookmark)
            .where(Bookmark.url == url, _matches(Bookmark.collection_id, scope_id))
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def create_bookmark(self, fields: NewBookmark) -> Bookmark:
        self.check_deadline()
        bookmark = Bookmark(
            title=fields.title,
            url=fields.url,
            description=fields.description,
            icon=fields.icon,
            folder_id=fields.folder_id,
            collection_id=fields.collection_id,
            is_featured=fields.is_featured,
            sort_order=fields.sort_order,
        )
        self._insert(bookmark)
        return bookmark

    def run_in_transaction(
        self,
        work: Callable[[PersistencePort], T],
        *,
        max_wait: float,  # noqa: ARG002
        timeout: float,  # noqa: ARG002
    ) -> T:
        # Already inside the caller's transaction.
        return work(self)


class SqlAlchemyStore:
    """SQLAlchemy-backed :class:`PersistencePort`.

    Standalone calls commit on their own; :meth:`run_in_transaction` groups calls
    into one transaction bounded by ``max_wait`` (time to get a connection) and
    ``timeout`` (time for the work itself, checked before each call and before commit).
    Every insert runs in its own savepoint inside that transaction.
    """

    def __init__(self, engine: Engine) -> None:
        """Initialise the store over an existing engine."""
        self._engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> SqlAlchemyStore:
        """Build a store for ``database_url`` and make sure the schema exists."""
        connect_args: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            # Streaming imports write from a worker thread.
            connect_args["check_same_thread"] = False
        engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        if database_url.startswith("sqlite"):
            _use_explicit_sqlite_transactions(engine)
        store = cls(engine)
        store.create_schema()
        return store

    @property
    def engine(self) -> Engine:
        """Underlying SQLAlchemy engine."""
        return self._engine

    def create_schema(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self._engine)

    def create_collection(self, name: str) -> Collection:
        """Create a collection (used by the CLI and tests; not part of the port)."""
        with self._sessions.begin() as session:
            collection = Collection(name=name)
            session.add(collection)
        LOGGER.info("Created collection %s (%s)", name, collection.id)
        return collection

    def collection_exists(self, scope_id: str) -> bool:
        with self._sessions.begin() as session:
            return _SessionPort(session).collection_exists(scope_id)

    def find_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder | None:
        with self._sessions.begin() as session:
            return _SessionPort(session).find_folder(name, parent_id, scope_id)

    def create_folder(self, name: str, parent_id: str | None, scope_id: str | None) -> Folder:
        try:
            with self._sessions.begin() as session:
                return _SessionPort(session).create_folder(name, parent_id, scope_id)
        except IntegrityError as exc:
            msg = f"Folder {name!r} already exists under parent {parent_id!r}"
            raise FolderConflictError(msg) from exc

    def find_bookmark_by_url(self, url: str, scope_id: str | None) -> Bookmark | None:
        with self._sessions.begin() as session:
            return _SessionPort(session).find_bookmark_by_url(url, scope_id)

    def create_bookmark(self, fields: NewBookmark) -> Bookmark:
        with self._sessions.begin() as session:
            return _SessionPort(session).create_bookmark(fields)

    def run_in_transaction(
        self,
        work: Callable[[PersistencePort], T],
        *,
        max_wait: float,
        timeout: float,
    ) -> T:
        requested = time.monotonic()
        with self._sessions() as session, session.begin():
            session.connection()
            waited = time.monotonic() - requested
            if waited > max_wait:
                msg = f"Waited {waited:.1f}s for a connection (limit {max_wait:.1f}s)"
                raise TransactionTimeoutError(msg)
            port = _SessionPort(session, deadline=time.monotonic() + timeout)
            result = work(port)
            port.check_deadline()
            return result


def _use_explicit_sqlite_transactions(engine: Engine) -> None:
    """Make SQLAlchemy emit ``BEGIN`` itself on SQLite.

    The ``sqlite3`` driver only opens a transaction before DML, so a ``SAVEPOINT``
    issued first would start (and on release, commit) a transaction of its own.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")
