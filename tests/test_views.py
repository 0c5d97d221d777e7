"""Tests for smartmarks.views terminal rendering."""

import json
from datetime import datetime, timezone
from io import StringIO

import pytest
from rich.console import Console

from smartmarks.models import SortOrder
from smartmarks.sync import BookmarkSynchronizer
from smartmarks.views import (
    EMPTY_MESSAGE, bookmark_table, count_label, format_bookmark, output_bookmarks, render_state,
)

from conftest import FakeStore, T0, make_session, record


def render(renderable) -> str:
    console = Console(file=StringIO(), width=200, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


def test_count_label():
    assert count_label(0) == "0 bookmarks"
    assert count_label(1) == "1 bookmark"
    assert count_label(2) == "2 bookmarks"


def test_bookmark_table_rows():
    now = datetime(2026, 10, 17, tzinfo=timezone.utc)
    table = bookmark_table([record("a", title="Python", url="https://python.org")],
                           SortOrder.OLDEST, now=now)
    text = render(table)
    assert "1 bookmark (oldest first)" in text
    assert "Python" in text
    assert "Feb 13, 2:05 PM" in text


def test_format_bookmark():
    bookmark = record("a", title="Python", url="https://python.org")
    assert format_bookmark(bookmark, "urls") == "https://python.org"
    assert json.loads(format_bookmark(bookmark, "json"))["id"] == "a"
    assert format_bookmark(bookmark).startswith("[a] Python (python.org)\n    https://python.org")


class TestOutputBookmarks:
    def test_empty_table(self):
        console = Console(file=StringIO(), width=200)
        output_bookmarks([], "table", console=console)
        assert EMPTY_MESSAGE in console.file.getvalue()

    def test_urls(self):
        console = Console(file=StringIO(), width=200)
        output_bookmarks([record("a", url="https://a.example"), record("b", url="https://b.example")],
                         "urls", console=console)
        assert console.file.getvalue().split() == ["https://a.example", "https://b.example"]

    def test_json(self):
        console = Console(file=StringIO(), width=200, color_system=None)
        output_bookmarks([record("a")], "json", console=console)
        data = json.loads(console.file.getvalue())
        assert data[0]["created_at"] == T0.isoformat()


class TestRenderState:
    def test_signed_out(self):
        assert "Not signed in" in render(render_state(BookmarkSynchronizer(FakeStore())))

    @pytest.mark.asyncio
    async def test_empty_list(self):
        async with BookmarkSynchronizer(FakeStore(), make_session("U1")) as sync:
            assert EMPTY_MESSAGE in render(render_state(sync))

    @pytest.mark.asyncio
    async def test_list_and_error(self):
        store = FakeStore([record("a", title="Python")])
        async with BookmarkSynchronizer(store, make_session("U1")) as sync:
            await sync.add("", "exa mple")
            text = render(render_state(sync))

        assert "Python" in text
        assert "Invalid URL format" in text
