"""
Data model for SmartMarks.

Two representations of a bookmark live here:

- BookmarkRow: the SQLAlchemy table used by the SQL backing store.
- Bookmark: the immutable record the synchronizer and views work with.

Rows and loosely-typed payloads are converted to Bookmark at the store
boundary (Bookmark.from_row / Bookmark.from_dict), so nothing untyped
travels further inward.
"""
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Union

from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from smartmarks.constants import MAX_TITLE_LENGTH, MAX_URL_LENGTH, SORT_NEWEST, SORT_OLDEST
from smartmarks.errors import StoreError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookmarkRow(Base):
    """
    Stored bookmark.

    Attributes:
        id: Opaque identifier assigned at insert
        user_id: Owner identifier
        title: Bookmark title
        url: The bookmarked URL
        created_at: Insert timestamp (UTC)
    """
    __tablename__ = 'bookmarks'

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(MAX_TITLE_LENGTH), nullable=False)
    url: Mapped[str] = mapped_column(String(MAX_URL_LENGTH), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )

    __table_args__ = (
        # Owner-scoped listing ordered by creation time
        Index('ix_bookmarks_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<BookmarkRow(id={self.id}, user_id={self.user_id}, url='{self.url[:50]}')>"


class SortOrder(str, Enum):
    """Display order of the bookmark list, by creation time."""
    NEWEST = SORT_NEWEST
    OLDEST = SORT_OLDEST

    @property
    def ascending(self) -> bool:
        return self is SortOrder.OLDEST

    @classmethod
    def parse(cls, value: Union[str, "SortOrder"]) -> "SortOrder":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown sort order: {value!r} (expected 'newest' or 'oldest')") from None


@dataclass(frozen=True)
class Bookmark:
    """A bookmark as seen by the client."""
    id: str
    owner_id: str
    title: str
    url: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: BookmarkRow) -> "Bookmark":
        created_at = row.created_at
        # SQLite drops tzinfo on the way back
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls.from_dict({
            "id": row.id,
            "user_id": row.user_id,
            "title": row.title,
            "url": row.url,
            "created_at": created_at,
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Bookmark":
        """
        Build a Bookmark from a store payload.

        Accepts either ``owner_id`` or the store column name ``user_id``, and
        ``created_at`` as a datetime or ISO-8601 string.

        Raises:
            StoreError: If a required field is missing or malformed
        """
        try:
            record_id = data["id"]
            owner_id = data["owner_id"] if "owner_id" in data else data["user_id"]
            url = data["url"]
            created_at = data["created_at"]
        except KeyError as e:
            raise StoreError(f"Bookmark payload is missing field {e.args[0]!r}") from None

        if not record_id or not owner_id or not url:
            raise StoreError("Bookmark payload has an empty id, owner or url")

        if isinstance(created_at, str):
            try:
                created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
            except ValueError:
                raise StoreError(f"Bookmark payload has a malformed created_at: {created_at!r}") from None
        if not isinstance(created_at, datetime):
            raise StoreError("Bookmark payload has no creation timestamp")

        return cls(
            id=str(record_id),
            owner_id=str(owner_id),
            title=str(data.get("title") or url),
            url=str(url),
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class Created:
    """Change notification: a bookmark was inserted."""
    record: Bookmark

    @property
    def owner_id(self) -> str:
        return self.record.owner_id


@dataclass(frozen=True)
class Deleted:
    """Change notification: a bookmark was removed."""
    id: str
    owner_id: str


ChangeEvent = Union[Created, Deleted]
