"""
Wiring between the auth service and the bookmark synchronizer.

SessionBinding listens for auth-state changes and hands the new session
(or None) to the synchronizer, which starts over for it. Re-initializations
run one at a time, in the order the events arrived.
"""
import asyncio
import logging
from typing import Callable, Optional, Set

from smartmarks.auth import AuthEvent, AuthService, Session
from smartmarks.sync import BookmarkSynchronizer

logger = logging.getLogger(__name__)


class SessionBinding:
    """Keep a synchronizer's session in step with an auth service."""

    def __init__(self, auth: AuthService, sync: BookmarkSynchronizer):
        self.auth = auth
        self.sync = sync
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Initialize from the current session and start following auth events."""
        self._unsubscribe = self.auth.on_auth_state_change(self._on_auth_change)
        await self._reinitialize(self.auth.get_session())

    def _on_auth_change(self, auth_event: AuthEvent, session: Optional[Session]) -> None:
        logger.info("Auth event %s, re-initializing bookmarks", auth_event.value)
        task = asyncio.get_running_loop().create_task(self._reinitialize(session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reinitialize(self, session: Optional[Session]) -> None:
        async with self._lock:
            await self.sync.initialize(session)

    async def settle(self) -> None:
        """Wait until every re-initialization triggered so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.settle()
        await self.sync.teardown()

    async def __aenter__(self) -> "SessionBinding":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
        return False
