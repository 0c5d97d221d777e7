"""
Error types for SmartMarks.

Every failure the client can surface derives from SmartmarksError so that
callers (the synchronizer, the CLI) can catch at one boundary.
"""
import re
from dataclasses import dataclass
from typing import Optional


class SmartmarksError(Exception):
    """Base class for SmartMarks errors."""
    pass


class ValidationError(SmartmarksError):
    """Input rejected locally, before any store call."""
    pass


class StoreError(SmartmarksError):
    """A fetch, insert, delete or subscribe against the backing store failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class AuthError(SmartmarksError):
    """Raised by the auth collaborator."""
    pass


@dataclass(frozen=True)
class AuthAction:
    """Follow-up suggested to the user after an auth failure."""
    type: str  # signin, signup, reset
    target: str
    label: str


@dataclass(frozen=True)
class ParsedAuthError:
    message: str
    action: Optional[AuthAction] = None


_ALREADY_REGISTERED = re.compile(
    r"(already.*registered|user already exists|user.*already|duplicate key|account.*exists|email.*already)"
)
_NOT_FOUND = re.compile(r"(user not found|no user|not found|invalid_credentials)")
_PASSWORD = re.compile(r"(password|incorrect password|invalid password)")


def classify_auth_error(raw: Optional[str]) -> ParsedAuthError:
    """
    Map an auth provider message to a suggested follow-up action.

    Args:
        raw: Message returned by the auth provider

    Returns:
        ParsedAuthError with the original message and an optional action
    """
    message = str(raw) if raw else ""
    lower = message.lower()

    if _ALREADY_REGISTERED.search(lower):
        return ParsedAuthError(message, AuthAction("signin", "login", "Sign in"))
    if _NOT_FOUND.search(lower):
        return ParsedAuthError(message, AuthAction("signup", "signup", "Create account"))
    if _PASSWORD.search(lower):
        return ParsedAuthError(message, AuthAction("reset", "login", "Reset password"))

    return ParsedAuthError(message)
