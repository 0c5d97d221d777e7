import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

import smartmarks.config
from smartmarks.auth import Session
from smartmarks.db import Database
from smartmarks.models import Bookmark, BookmarkRow, Created, Deleted, SortOrder
from smartmarks.store import BookmarkStore, ChangeFeed, Subscription

T0 = datetime(2026, 2, 13, 14, 5, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch, tmp_path):
    """Isolate every test from the user's config files and SMARTMARKS_* variables."""
    for key in list(os.environ.keys()):
        if key.startswith("SMARTMARKS_"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(smartmarks.config, "_config", None)
    yield


@pytest.fixture
def db():
    """Create a temporary database for each test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        database = Database(path=os.path.join(tmpdir, "test.db"))
        yield database
        database.engine.dispose()


def make_session(user_id: str = "U1", email: str = None) -> Session:
    return Session(user_id=user_id, access_token=f"token-{user_id}", email=email)


@pytest.fixture
def session():
    return make_session("U1", "u1@example.com")


def seed(db: Database, owner_id: str, title: str, url: str, created_at: datetime, id: str = None) -> str:
    """Insert a row directly, bypassing the change feed."""
    with db.session() as s:
        row = BookmarkRow(
            id=id or f"{owner_id}-{title}".replace(" ", "-").lower(),
            user_id=owner_id,
            title=title,
            url=url,
            created_at=created_at,
        )
        s.add(row)
        s.flush()
        return row.id


@pytest.fixture
def seeded_db(db):
    """Database with three bookmarks for U1 and one for U2."""
    seed(db, "U1", "Python", "https://python.org", T0, id="b1")
    seed(db, "U1", "GitHub", "https://github.com", T0 + timedelta(hours=1), id="b2")
    seed(db, "U1", "Docs", "https://docs.python.org", T0 + timedelta(hours=2), id="b3")
    seed(db, "U2", "Other", "https://other.example", T0 + timedelta(hours=3), id="x1")
    return db


def record(id: str, owner_id: str = "U1", title: str = "Title", url: str = "https://example.com",
           created_at: datetime = T0) -> Bookmark:
    return Bookmark(id=id, owner_id=owner_id, title=title, url=url, created_at=created_at)


class FakeStore(BookmarkStore):
    """
    In-memory store with controllable fetch latency and failures.

    fetch_delays maps a SortOrder to seconds slept before answering.
    failures maps an operation name (fetch, insert, delete, subscribe) to
    the exception it raises.
    """

    def __init__(self, rows: List[Bookmark] = None):
        self.rows: List[Bookmark] = list(rows or [])
        self.feed = ChangeFeed()
        self.calls: List[tuple] = []
        self.fetch_delays: Dict[SortOrder, float] = {}
        self.failures: Dict[str, Exception] = {}
        self._next_id = 1

    def _maybe_fail(self, operation: str):
        if operation in self.failures:
            raise self.failures[operation]

    async def fetch(self, owner_id, order=SortOrder.NEWEST):
        self.calls.append(("fetch", owner_id, order))
        delay = self.fetch_delays.get(order, 0)
        await asyncio.sleep(delay)
        self._maybe_fail("fetch")
        rows = [b for b in self.rows if b.owner_id == owner_id]
        return sorted(rows, key=lambda b: b.created_at, reverse=not order.ascending)

    async def insert(self, owner_id, title, url):
        self.calls.append(("insert", owner_id, title, url))
        await asyncio.sleep(0)
        self._maybe_fail("insert")
        created = record(f"B{self._next_id}", owner_id, title, url,
                         T0 + timedelta(minutes=self._next_id))
        self._next_id += 1
        self.rows.append(created)
        self.feed.publish(Created(created))
        return created

    async def delete(self, bookmark_id, owner_id):
        self.calls.append(("delete", bookmark_id, owner_id))
        await asyncio.sleep(0)
        self._maybe_fail("delete")
        before = len(self.rows)
        self.rows = [b for b in self.rows if not (b.id == bookmark_id and b.owner_id == owner_id)]
        removed = len(self.rows) < before
        if removed:
            self.feed.publish(Deleted(id=bookmark_id, owner_id=owner_id))
        return removed

    def subscribe(self, owner_id) -> Subscription:
        self.calls.append(("subscribe", owner_id))
        self._maybe_fail("subscribe")
        return self.feed.subscribe(owner_id)


@pytest.fixture
def fake_store():
    return FakeStore()


async def wait_until(predicate, timeout: float = 2.0):
    """Poll predicate until it holds or the timeout expires."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


async def settle(rounds: int = 10):
    """Give scheduled tasks a chance to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
