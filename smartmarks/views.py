"""
Terminal rendering of the bookmark list.
"""
import json
from datetime import datetime
from typing import Iterable, Optional, Sequence

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from smartmarks.constants import DEFAULT_TITLE_WIDTH, DEFAULT_URL_WIDTH
from smartmarks.models import Bookmark, SortOrder
from smartmarks.sync import BookmarkSynchronizer
from smartmarks.utils import extract_domain, format_date

EMPTY_MESSAGE = "No bookmarks yet. Add one to get started!"


def count_label(count: int) -> str:
    return f"{count} {'bookmark' if count == 1 else 'bookmarks'}"


def bookmark_table(bookmarks: Sequence[Bookmark], sort_order: SortOrder = SortOrder.NEWEST,
                   now: Optional[datetime] = None) -> Table:
    """Build a rich table of bookmarks."""
    table = Table(title=f"{count_label(len(bookmarks))} ({sort_order.value} first)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="green")
    table.add_column("URL", style="blue")
    table.add_column("Added", style="magenta")

    for b in bookmarks:
        table.add_row(
            b.id,
            b.title[:DEFAULT_TITLE_WIDTH],
            b.url[:DEFAULT_URL_WIDTH],
            format_date(b.created_at, now=now),
        )
    return table


def render_state(sync: BookmarkSynchronizer) -> RenderableType:
    """Render the synchronizer's current state for the live view."""
    parts = []
    if not sync.active:
        parts.append(Text("Not signed in", style="yellow"))
    elif not sync.bookmarks:
        parts.append(Panel(Text(EMPTY_MESSAGE, style="dim"), border_style="dim"))
    else:
        parts.append(bookmark_table(sync.bookmarks, sync.sort_order))

    status = []
    if sync.refreshing:
        status.append("refreshing")
    if sync.loading:
        status.append("adding")
    if sync.deleting:
        status.append(f"deleting {sync.deleting}")
    if status:
        parts.append(Text(", ".join(status), style="dim"))
    if sync.error:
        parts.append(Text(sync.error, style="red"))
    return Group(*parts)


def format_bookmark(bookmark: Bookmark, format: str = "plain") -> str:
    """Format a single bookmark for line output."""
    if format == "json":
        return json.dumps(bookmark.to_dict())
    if format in ("url", "urls"):
        return bookmark.url
    return f"[{bookmark.id}] {bookmark.title} ({extract_domain(bookmark.url)})\n    {bookmark.url}\n    Added {format_date(bookmark.created_at)}"


def output_bookmarks(bookmarks: Iterable[Bookmark], format: str = "table",
                     console: Optional[Console] = None,
                     sort_order: SortOrder = SortOrder.NEWEST):
    """Output bookmarks in the specified format."""
    console = console or Console()
    bookmarks = list(bookmarks)

    if format == "table":
        if bookmarks:
            console.print(bookmark_table(bookmarks, sort_order))
        else:
            console.print(f"[dim]{EMPTY_MESSAGE}[/dim]")
    elif format == "json":
        console.print_json(json.dumps([b.to_dict() for b in bookmarks]))
    elif format == "urls":
        for b in bookmarks:
            console.print(b.url, markup=False, highlight=False)
    else:  # plain
        for b in bookmarks:
            console.print(format_bookmark(b, "plain"), markup=False, highlight=False)
            console.print()
