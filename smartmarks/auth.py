"""
Session and auth-state handling.

Sign-in itself belongs to an external identity provider; this module only
models what the client needs from it: the current Session, and a stream of
auth-state-change events (signed in, signed out, user updated) that the
rest of the client reacts to by replacing its session wholesale.

LocalAuth is a file-backed implementation used by the terminal client and
the tests. It stores the session as JSON in a token file and restores it
when constructed, the same way a browser client restores a stored token on
page load. reload() picks up sign-ins and sign-outs made by other processes
sharing the file.
"""
import json
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from smartmarks.errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LIFETIME = timedelta(days=7)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class Session:
    """
    Authenticated-user context.

    Attributes:
        user_id: Owner identifier used to scope every bookmark query
        access_token: Opaque bearer token
        email: Optional account email
        expires_at: Expiry time (UTC); None means no expiry
    """
    user_id: str
    access_token: str
    email: Optional[str] = None
    expires_at: Optional[datetime] = None

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        expires_at = data.get("expires_at")
        if expires_at:
            expires_at = datetime.fromisoformat(expires_at)
            # Stored times without an offset are UTC
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            user_id=data["user_id"],
            access_token=data["access_token"],
            email=data.get("email"),
            expires_at=expires_at or None,
        )


AuthListener = Callable[[AuthEvent, Optional[Session]], None]


class AuthService(ABC):
    """Contract of the external auth collaborator."""

    def __init__(self):
        self._listeners: List[AuthListener] = []

    @abstractmethod
    def get_session(self) -> Optional[Session]:
        """Current session, or None when signed out or expired."""
        pass

    @abstractmethod
    def sign_in(self, user_id: str, email: Optional[str] = None) -> Session:
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    @abstractmethod
    def update_user(self, email: Optional[str] = None) -> Session:
        pass

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener for auth-state changes.

        Returns:
            A function that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, auth_event: AuthEvent, session: Optional[Session]) -> None:
        logger.debug("Auth state change: %s", auth_event.value)
        for listener in list(self._listeners):
            listener(auth_event, session)


class LocalAuth(AuthService):
    """File-backed auth service."""

    def __init__(self, session_file: Optional[str] = None,
                 lifetime: Optional[timedelta] = DEFAULT_SESSION_LIFETIME):
        super().__init__()
        self.session_file = Path(session_file) if session_file else None
        self.lifetime = lifetime
        self._session: Optional[Session] = self._restore()

    def _restore(self) -> Optional[Session]:
        if self.session_file is None or not self.session_file.exists():
            return None
        try:
            with open(self.session_file, "r", encoding="utf-8") as f:
                session = Session.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.session_file, e)
            return None
        if session.expired():
            logger.info("Stored session for %s has expired", session.user_id)
            self._forget()
            return None
        return session

    def _persist(self, session: Session) -> None:
        if self.session_file is None:
            return
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.session_file, "w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f, indent=2)
        self.session_file.chmod(0o600)

    def _forget(self) -> None:
        if self.session_file is not None and self.session_file.exists():
            self.session_file.unlink()

    def get_session(self) -> Optional[Session]:
        if self._session is not None and self._session.expired():
            logger.info("Session for %s expired", self._session.user_id)
            self._session = None
            self._forget()
            self._emit(AuthEvent.SIGNED_OUT, None)
        return self._session

    def sign_in(self, user_id: str, email: Optional[str] = None) -> Session:
        user_id = (user_id or "").strip()
        if not user_id:
            raise AuthError("A user id is required to sign in")

        expires_at = datetime.now(timezone.utc) + self.lifetime if self.lifetime else None
        session = Session(
            user_id=user_id,
            access_token=secrets.token_urlsafe(32),
            email=email,
            expires_at=expires_at,
        )
        self._session = session
        self._persist(session)
        logger.info("Signed in as %s", user_id)
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info("Signed out %s", self._session.user_id)
        self._session = None
        self._forget()
        self._emit(AuthEvent.SIGNED_OUT, None)

    def reload(self) -> Optional[Session]:
        """
        Re-read the session file and emit an event if another process signed
        in, signed out or updated the user since it was last read.
        """
        if self.session_file is None:
            return self.get_session()

        stored = self._restore()
        current = self._session
        if stored is None and self.session_file.exists():
            # Unreadable, possibly mid-write
            return current
        if stored == current:
            return current

        self._session = stored
        if stored is None:
            logger.info("Session for %s ended elsewhere", current.user_id)
            self._emit(AuthEvent.SIGNED_OUT, None)
        elif current is None or stored.access_token != current.access_token:
            logger.info("Signed in elsewhere as %s", stored.user_id)
            self._emit(AuthEvent.SIGNED_IN, stored)
        else:
            self._emit(AuthEvent.USER_UPDATED, stored)
        return stored

    def update_user(self, email: Optional[str] = None) -> Session:
        if self._session is None:
            raise AuthError("Not signed in")
        self._session = replace(self._session, email=email)
        self._persist(self._session)
        self._emit(AuthEvent.USER_UPDATED, self._session)
        return self._session
