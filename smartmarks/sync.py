"""
Bookmark synchronizer.

Keeps a local, non-authoritative list of the signed-in user's bookmarks
consistent with the backing store. The list is pulled with explicit fetches
(initialize, set_sort_order, refresh) and pushed to by a change-notification
subscription scoped to the user's id. Writes (add, delete) are never applied
locally: the list changes when the corresponding notification arrives, or
on the next fetch.

Every public operation catches failures at its own boundary. The message is
kept in ``error`` (the exception itself in ``last_error``), the operation
returns False, and the list is left as it was.

Example:
    >>> store = Database(url="sqlite://")
    >>> async with BookmarkSynchronizer(store, session) as sync:
    ...     await sync.add("My Site", "mysite.com")
    ...     await sync.set_sort_order("oldest")
    ...     print(sync.bookmarks)
"""
import asyncio
import logging
from typing import Callable, List, Optional, Tuple, Union

from smartmarks.auth import Session
from smartmarks.errors import AuthError, SmartmarksError, StoreError, ValidationError
from smartmarks.models import Bookmark, Created, Deleted, SortOrder
from smartmarks.store import BookmarkStore, Subscription
from smartmarks.utils import normalize_url, validate_url

logger = logging.getLogger(__name__)

Listener = Callable[["BookmarkSynchronizer"], None]


class BookmarkSynchronizer:
    """
    Local view of one user's bookmarks.

    Attributes:
        store: Backing store all requests go to
        session: Current session; None makes the synchronizer inert
        sort_order: Order of the last requested fetch
        error: Message of the last failed operation, None after a success
        last_error: Exception of the last failed operation
        loading: True while an add is in flight
        refreshing: True while a refresh is in flight
        deleting: Id of the bookmark being deleted, if any
    """

    def __init__(self, store: BookmarkStore, session: Optional[Session] = None):
        self.store = store
        self.session = session
        self.sort_order = SortOrder.NEWEST
        self.error: Optional[str] = None
        self.last_error: Optional[Exception] = None
        self.loading = False
        self.refreshing = False
        self.deleting: Optional[str] = None

        self._bookmarks: List[Bookmark] = []
        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None
        # Incremented for every fetch; only the latest one may apply its result
        self._fetch_seq = 0
        self._listeners: List[Listener] = []

    # State

    @property
    def bookmarks(self) -> Tuple[Bookmark, ...]:
        return tuple(self._bookmarks)

    @property
    def active(self) -> bool:
        return self.session is not None

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Call listener(self) after every state change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Bookmark listener %r failed", listener)

    def _succeed(self) -> None:
        self.error = None
        self.last_error = None

    def _fail(self, exc: Exception, operation: str) -> bool:
        if not isinstance(exc, SmartmarksError):
            exc = StoreError(str(exc), operation=operation)
        self.last_error = exc
        self.error = str(exc)
        if isinstance(exc, ValidationError):
            logger.info("%s rejected: %s", operation, exc)
        else:
            logger.warning("%s failed: %s", operation, exc)
        self._notify()
        return False

    # Lifecycle

    async def initialize(self, session: Optional[Session]) -> bool:
        """
        Start over for a (possibly absent) session.

        Without a session the list is emptied and nothing is requested. With
        one, the sort order goes back to newest, the user's bookmarks are
        fetched and a change subscription for the user is opened.

        Returns:
            True if the initial fetch succeeded (or there is no session)
        """
        await self.teardown()
        # Results of fetches issued for the previous session must not land
        self._fetch_seq += 1
        self.session = session
        self.sort_order = SortOrder.NEWEST
        self._bookmarks = []
        self._succeed()
        self.loading = self.refreshing = False
        self.deleting = None

        if session is None:
            logger.debug("No session, synchronizer is inert")
            self._notify()
            return True

        logger.info("Initializing bookmarks for %s", session.user_id)
        loaded = await self._load(SortOrder.NEWEST)

        if self.session is not session:
            # Replaced while the fetch was in flight
            return False
        try:
            self._open_subscription(session)
        except Exception as e:
            return self._fail(e, "subscribe")
        self._notify()
        return loaded

    def _open_subscription(self, session: Session) -> None:
        subscription = self.store.subscribe(session.user_id)
        self._subscription = subscription
        self._consumer = asyncio.get_running_loop().create_task(
            self._consume(subscription, session),
            name=f"bookmark-feed-{session.user_id}",
        )

    async def _consume(self, subscription: Subscription, session: Session) -> None:
        """Fold change events into the local list until the subscription closes."""
        async for change in subscription:
            if self.session is not session:
                break
            if isinstance(change, Created):
                self.on_create_notification(change.record)
            elif isinstance(change, Deleted):
                self.on_delete_notification(change.id)
            else:
                logger.debug("Ignoring unknown change event %r", change)
        logger.debug("Change feed for %s finished", session.user_id)

    async def teardown(self) -> None:
        """Close the change subscription. Safe to call repeatedly."""
        subscription, consumer = self._subscription, self._consumer
        self._subscription = None
        self._consumer = None

        if subscription is not None:
            subscription.close()
        if consumer is not None and consumer is not asyncio.current_task():
            await consumer

    async def __aenter__(self) -> "BookmarkSynchronizer":
        await self.initialize(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.teardown()
        return False

    # Pull

    async def _load(self, order: SortOrder) -> bool:
        session = self.session
        if session is None:
            return False

        self._fetch_seq += 1
        seq = self._fetch_seq
        try:
            records = await self.store.fetch(session.user_id, order)
        except Exception as e:
            if seq != self._fetch_seq:
                logger.debug("Ignoring failure of superseded fetch (%s)", order.value)
                return False
            return self._fail(e, "fetch")

        if seq != self._fetch_seq or self.session is not session:
            logger.debug("Discarding stale fetch result (%s)", order.value)
            return False

        self._bookmarks = [r for r in records if r.owner_id == session.user_id]
        self._succeed()
        self._notify()
        return True

    async def set_sort_order(self, order: Union[SortOrder, str]) -> bool:
        """
        Switch between newest-first and oldest-first.

        The list is re-fetched in the new order rather than re-sorted locally.
        If several changes overlap, only the last one's result is shown.
        """
        try:
            order = SortOrder.parse(order)
        except ValueError as e:
            return self._fail(ValidationError(str(e)), "sort")

        self.sort_order = order
        self._notify()
        if self.session is None:
            return True
        return await self._load(order)

    async def refresh(self) -> bool:
        """Re-fetch with the current sort order, e.g. after a missed notification."""
        if self.session is None:
            return False
        self.refreshing = True
        self._notify()
        try:
            return await self._load(self.sort_order)
        finally:
            self.refreshing = False
            self._notify()

    # Writes

    async def add(self, title: Optional[str], url: Optional[str]) -> bool:
        """
        Submit a new bookmark.

        The URL is trimmed and given an https:// scheme when it has none;
        the title defaults to the URL. Nothing is inserted locally, the
        bookmark appears once its creation notification arrives.
        """
        session = self.session
        if session is None:
            return self._fail(AuthError("Not signed in"), "add")

        url = (url or "").strip()
        if not url:
            return self._fail(ValidationError("URL is required"), "add")

        url = normalize_url(url)
        if not validate_url(url):
            return self._fail(ValidationError("Invalid URL format"), "add")

        title = (title or "").strip() or url

        self.loading = True
        self._notify()
        try:
            record = await self.store.insert(session.user_id, title, url)
        except Exception as e:
            self.loading = False
            return self._fail(e, "add")
        self.loading = False

        logger.debug("Submitted bookmark %s", record.id)
        self._succeed()
        self._notify()
        return True

    async def delete(self, bookmark_id: str) -> bool:
        """
        Delete one of the user's bookmarks.

        The store matches both the id and the session's user, so an id owned
        by someone else is a no-op. The entry leaves the local list when the
        deletion notification arrives.

        Returns:
            True if the store removed a row
        """
        session = self.session
        if session is None:
            return False

        self.deleting = bookmark_id
        self._notify()
        try:
            removed = await self.store.delete(bookmark_id, session.user_id)
        except Exception as e:
            self.deleting = None
            return self._fail(e, "delete")
        self.deleting = None

        if not removed:
            logger.info("Bookmark %s not found for %s", bookmark_id, session.user_id)
        self._succeed()
        self._notify()
        return removed

    # Push

    def on_create_notification(self, record: Bookmark) -> None:
        """
        Prepend a newly created bookmark unless it is already listed.

        Records are always prepended, also when sorted oldest-first.
        """
        if self.session is None or record.owner_id != self.session.user_id:
            return
        if any(b.id == record.id for b in self._bookmarks):
            return
        self._bookmarks.insert(0, record)
        self._notify()

    def on_delete_notification(self, bookmark_id: str) -> None:
        remaining = [b for b in self._bookmarks if b.id != bookmark_id]
        if len(remaining) == len(self._bookmarks):
            return
        self._bookmarks = remaining
        self._notify()

    def __repr__(self):
        user = self.session.user_id if self.session else None
        return f"<BookmarkSynchronizer(user={user}, bookmarks={len(self._bookmarks)}, sort={self.sort_order.value})>"
