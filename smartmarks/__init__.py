"""
SmartMarks - personal bookmarks with live updates

Each signed-in user owns a list of bookmarks kept in a backing store. The
client holds a local copy of that list and keeps it current through
explicit fetches and a change-notification feed scoped to the user.

Design Principles:
- The backing store is the source of truth; the local list is a cache
- Writes are never applied locally; change notifications drive the list
- The session is passed explicitly and replaced wholesale on auth changes
- Store payloads are typed at the boundary

Example Usage:
    >>> from smartmarks import Database, LocalAuth, BookmarkSynchronizer
    >>> store = Database(url="sqlite://")
    >>> session = LocalAuth().sign_in("u1")
    >>> async with BookmarkSynchronizer(store, session) as sync:
    ...     await sync.add("Example", "example.com")
"""

__version__ = "1.0.0"
__author__ = "SmartMarks Contributors"

# Core
from smartmarks.sync import BookmarkSynchronizer
from smartmarks.store import BookmarkStore, ChangeFeed, Subscription
from smartmarks.db import Database, get_db

# Auth
from smartmarks.auth import AuthEvent, AuthService, LocalAuth, Session
from smartmarks.app import SessionBinding

# Configuration
from smartmarks.config import SmartmarksConfig, get_config, init_config

# Models
from smartmarks.models import Bookmark, BookmarkRow, Created, Deleted, SortOrder

# Errors
from smartmarks.errors import (
    SmartmarksError,
    ValidationError,
    StoreError,
    AuthError,
    classify_auth_error,
)

# Utilities
from smartmarks.utils import normalize_url, validate_url, format_date

__all__ = [
    # Core
    "BookmarkSynchronizer",
    "BookmarkStore",
    "ChangeFeed",
    "Subscription",
    "Database",
    "get_db",
    # Auth
    "AuthEvent",
    "AuthService",
    "LocalAuth",
    "Session",
    "SessionBinding",
    # Config
    "SmartmarksConfig",
    "get_config",
    "init_config",
    # Models
    "Bookmark",
    "BookmarkRow",
    "Created",
    "Deleted",
    "SortOrder",
    # Errors
    "SmartmarksError",
    "ValidationError",
    "StoreError",
    "AuthError",
    "classify_auth_error",
    # Utilities
    "normalize_url",
    "validate_url",
    "format_date",
]
