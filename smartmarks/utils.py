"""
URL and date helpers shared by the synchronizer and the terminal views.
"""
import re
from datetime import datetime, timezone
from typing import Optional, Union
from urllib.parse import urlparse

from smartmarks.constants import ALLOWED_SCHEMES, MAX_URL_LENGTH

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_HOST_RE = re.compile(r"^[A-Za-z0-9\-._~%!$&'()*+,;=]+$")


def normalize_url(url: str) -> str:
    """
    Trim a user-entered URL and prepend https:// when it carries no scheme.

    Examples:
        normalize_url("example.com")          -> "https://example.com"
        normalize_url(" http://example.com ") -> "http://example.com"
    """
    url = url.strip()
    if not url:
        return url
    if _SCHEME_RE.match(url):
        return url
    return f"https://{url}"


def validate_url(url: str) -> bool:
    """Check that a URL parses as http/https with a well-formed host."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    if any(ch.isspace() for ch in url):
        # Whitespace is only tolerated after the host, where browsers escape it
        head = url.split("/", 3)
        if len(head) < 4 or any(ch.isspace() for ch in "/".join(head[:3])):
            return False

    try:
        parsed = urlparse(url)
        # Accessing port validates it
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    host = parsed.hostname
    if not host:
        return False
    if ":" in host:
        # IPv6 literal, urlparse already checked the brackets
        return True
    return bool(_HOST_RE.match(host)) and ".." not in host


def extract_domain(url: str) -> str:
    return urlparse(url).netloc


def format_date(value: Union[datetime, str, None], now: Optional[datetime] = None) -> str:
    """
    Format a creation timestamp for display, e.g. "Feb 13, 2026, 2:05 PM".

    The year is omitted when it matches the current year. Strings that do not
    parse as ISO timestamps are returned unchanged.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value

    now = now or datetime.now(timezone.utc)
    if value.tzinfo is not None and now.tzinfo is not None:
        value = value.astimezone(now.tzinfo)

    hour = value.hour % 12 or 12
    clock = f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"
    day = f"{value.strftime('%b')} {value.day}"
    if value.year != now.year:
        day = f"{day}, {value.year}"
    return f"{day}, {clock}"
