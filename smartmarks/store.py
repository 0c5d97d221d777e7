"""
Backing store contract.

The synchronizer talks to the backing platform only through BookmarkStore.
A store must support owner-scoped listing ordered by creation time, insert
returning the generated id and timestamp, delete filtered by id and owner,
and a push subscription delivering Created/Deleted events for one owner.

Example:
    >>> async with store.subscribe("user-1") as sub:
    ...     async for event in sub:
    ...         print(event)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Set

from smartmarks.models import Bookmark, ChangeEvent, SortOrder

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """
    Handle on a change-notification channel scoped to one owner.

    Iterating yields Created/Deleted events until the subscription is closed.
    The sequence cannot be restarted: once closed, iteration ends and further
    deliveries are dropped.
    """

    def __init__(self, owner_id: str, on_close: Optional[Callable[["Subscription"], None]] = None):
        self.owner_id = owner_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ChangeEvent) -> None:
        """Queue an event for the consumer. Ignored once closed."""
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        # Wake a consumer blocked in __anext__
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)
        logger.debug("Closed subscription for owner %s", self.owner_id)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        state = "closed" if self._closed else "open"
        return f"<Subscription(owner_id={self.owner_id}, {state})>"


class ChangeFeed:
    """
    In-process fan-out of change events to owner-scoped subscriptions.

    publish() delivers an event only to subscriptions whose owner matches the
    event's owner, which is the server-side equality filter of a realtime
    channel.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Set[Subscription]] = {}

    def subscribe(self, owner_id: str) -> Subscription:
        subscription = Subscription(owner_id, on_close=self._remove)
        self._subscriptions.setdefault(owner_id, set()).add(subscription)
        logger.debug("Opened subscription for owner %s", owner_id)
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to matching subscriptions.

        Returns:
            Number of subscriptions the event was delivered to
        """
        targets = list(self._subscriptions.get(event.owner_id, ()))
        for subscription in targets:
            subscription.deliver(event)
        return len(targets)

    def owners(self) -> List[str]:
        """Owners with at least one open subscription."""
        return list(self._subscriptions)

    def subscriber_count(self, owner_id: Optional[str] = None) -> int:
        if owner_id is not None:
            return len(self._subscriptions.get(owner_id, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def close_all(self) -> None:
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()
        self._subscriptions.clear()

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.owner_id)
        if subs is None:
            return
        subs.discard(subscription)
        if not subs:
            del self._subscriptions[subscription.owner_id]


class BookmarkStore(ABC):
    """Abstract backing store for bookmarks."""

    @abstractmethod
    async def fetch(self, owner_id: str, order: SortOrder = SortOrder.NEWEST) -> List[Bookmark]:
        """Return every bookmark owned by owner_id, ordered by creation time."""
        pass

    @abstractmethod
    async def insert(self, owner_id: str, title: str, url: str) -> Bookmark:
        """Insert a bookmark and return it with its generated id and timestamp."""
        pass

    @abstractmethod
    async def delete(self, bookmark_id: str, owner_id: str) -> bool:
        """
        Delete a bookmark matching both id and owner.

        Returns:
            True if a row was removed, False if nothing matched
        """
        pass

    @abstractmethod
    def subscribe(self, owner_id: str) -> Subscription:
        """Open a change-notification channel for owner_id."""
        pass

    async def close(self) -> None:
        """Release store resources."""
        pass
