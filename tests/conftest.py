"""Shared pytest fixtures for bookmark importer tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from bookmark_importer.persistence import SqlAlchemyStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

SCENARIO_HTML = (
    "<DL><DT><H3>Work</H3><DL>"
    '<DT><A HREF="https://a.com">A</A>'
    '<DT><A HREF="javascript:x">bad</A>'
    "</DL></DT>"
    '<DT><A HREF="https://b.com">B</A>'
    "</DL>"
)

NETSCAPE_EXPORT = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1700000000" PERSONAL_TOOLBAR_FOLDER="true">Bookmarks bar</H3>
    <DL><p>
        <DT><A HREF="https://docs.python.org/3/" ADD_DATE="1700000001" ICON="data:image/png;base64,AAAA">Python docs</A>
        <DT><H3>Dev</H3>
        <DL><p>
            <DT><A HREF="https://github.com/">GitHub</A>
            <DT><A HREF="https://pypi.org/">PyPI</A>
        </DL><p>
        <DT><H3>News</H3>
        <DL><p>
            <DT><A HREF="https://news.ycombinator.com/">HN</A>
        </DL><p>
        <DT><A HREF="https://example.com/after-folders">After folders</A>
    </DL><p>
    <DT><A HREF="https://top.example/">Top level</A>
</DL><p>
"""


def _chrome_export(children: list[dict[str, object]], root_name: str = "Bookmarks bar") -> str:
    return json.dumps(
        {
            "checksum": "abc",
            "version": 1,
            "roots": {
                "bookmark_bar": {"name": root_name, "type": "folder", "children": children},
                "other": {"name": "Other bookmarks", "type": "folder", "children": []},
                "sync_transaction_version": "1",
            },
        },
    )


@pytest.fixture
def store(tmp_path: Path) -> SqlAlchemyStore:
    """Fresh SQLite-backed store per test."""
    return SqlAlchemyStore.from_url(f"sqlite:///{tmp_path / 'bookmarks.db'}")


@pytest.fixture
def collection_id(store: SqlAlchemyStore) -> str:
    """Id of an empty collection in the test store."""
    return store.create_collection("Imported").id


@pytest.fixture
def sample_export_html(tmp_path: Path) -> Path:
    """Write a realistic Netscape bookmark export to disk."""
    p = tmp_path / "bookmarks.html"
    p.write_text(NETSCAPE_EXPORT, encoding="utf-8")
    return p


@pytest.fixture
def scenario_html() -> str:
    """One folder holding a good and a script link, plus one root-level link."""
    return SCENARIO_HTML


@pytest.fixture
def chrome_export() -> Callable[..., str]:
    """Factory rendering a Chrome-style JSON export around the given bookmark-bar children."""
    return _chrome_export
