#!/usr/bin/env python3
"""
SmartMarks command-line client.

Sign in, then list, add, delete and watch your bookmarks. Every bookmark
command goes through the same synchronizer a long-running client uses, so
`watch` shows other clients' additions and deletions as they happen.
"""
import sys
import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from smartmarks.auth import LocalAuth, Session
from smartmarks.config import init_config, get_config
from smartmarks.constants import DEFAULT_POLL_INTERVAL
from smartmarks.db import Database
from smartmarks.errors import AuthError, classify_auth_error
from smartmarks.app import SessionBinding
from smartmarks.sync import BookmarkSynchronizer
from smartmarks.views import output_bookmarks, render_state

logger = logging.getLogger(__name__)


console = Console()


def setup_logging(level: str, verbose: bool = False, color: bool = True):
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True, no_color=not color), rich_tracebacks=True)],
    )


def get_auth(args) -> LocalAuth:
    config = get_config()
    return LocalAuth(args.session_file or config.session_file)


def get_store(args) -> Database:
    config = get_config()
    if config.database_url and not args.db:
        return Database(url=config.database_url)
    return Database(path=args.db or config.database)


def require_session(auth: LocalAuth) -> Session:
    session = auth.get_session()
    if session is None:
        console.print("[red]Not signed in. Run 'smartmarks login USER_ID' first.[/red]")
        sys.exit(1)
    return session


async def _run_with_sync(args, action):
    """Open a synchronizer for the signed-in user, run action(sync), tear down."""
    session = require_session(get_auth(args))
    store = get_store(args)
    try:
        async with BookmarkSynchronizer(store, session) as sync:
            if sync.error:
                console.print(f"[red]Error: {sync.error}[/red]")
                return False
            return await action(sync)
    finally:
        await store.close()


def cmd_login(args):
    """Sign in and store the session."""
    auth = get_auth(args)
    try:
        session = auth.sign_in(args.user_id, email=args.email)
    except AuthError as e:
        parsed = classify_auth_error(str(e))
        console.print(f"[red]{parsed.message}[/red]")
        if parsed.action:
            console.print(f"[yellow]Try: {parsed.action.label}[/yellow]")
        sys.exit(1)
    if not args.quiet:
        console.print(f"[green]Signed in as {session.user_id}[/green]")


def cmd_logout(args):
    auth = get_auth(args)
    auth.sign_out()
    if not args.quiet:
        console.print("[green]Signed out[/green]")


def cmd_whoami(args):
    session = require_session(get_auth(args))
    if args.output == "json":
        print(json.dumps({"user_id": session.user_id, "email": session.email}))
    elif session.email:
        print(f"{session.user_id} <{session.email}>")
    else:
        print(session.user_id)


def cmd_list(args):
    """List bookmarks."""
    async def action(sync: BookmarkSynchronizer):
        order = args.sort or get_config().default_sort
        if order != sync.sort_order.value and not await sync.set_sort_order(order):
            console.print(f"[red]Error: {sync.error}[/red]")
            return False
        output_bookmarks(sync.bookmarks, args.output, console=console, sort_order=sync.sort_order)
        return True

    if not asyncio.run(_run_with_sync(args, action)):
        sys.exit(1)


def cmd_add(args):
    """Add a bookmark."""
    async def action(sync: BookmarkSynchronizer):
        if not await sync.add(args.title, args.url):
            console.print(f"[red]Error: {sync.error}[/red]")
            return False
        if not args.quiet:
            console.print("[green]Added bookmark[/green]")
        return True

    if not asyncio.run(_run_with_sync(args, action)):
        sys.exit(1)


def cmd_delete(args):
    """Delete bookmarks."""
    async def action(sync: BookmarkSynchronizer):
        deleted_count = 0
        for bookmark_id in args.ids:
            if await sync.delete(bookmark_id):
                deleted_count += 1
                if not args.quiet:
                    console.print(f"[green]Deleted bookmark {bookmark_id}[/green]")
            elif sync.error:
                console.print(f"[red]Error: {sync.error}[/red]")
                return False
            else:
                console.print(f"[yellow]Bookmark not found: {bookmark_id}[/yellow]")
        if args.quiet:
            print(deleted_count)
        return True

    if not asyncio.run(_run_with_sync(args, action)):
        sys.exit(1)


async def _watch(args):
    auth = get_auth(args)
    store = get_store(args)
    sync = BookmarkSynchronizer(store)
    try:
        # Pick up writes from other clients of the same database
        store.start_polling(args.interval)
        async with SessionBinding(auth, sync):
            if not sync.active:
                console.print("[yellow]Not signed in; waiting for a session[/yellow]")
            order = args.sort or get_config().default_sort
            if order != sync.sort_order.value:
                await sync.set_sort_order(order)
            with Live(render_state(sync), console=console, auto_refresh=False) as live:
                remove = sync.add_listener(lambda s: live.update(render_state(s), refresh=True))
                try:
                    while True:
                        await asyncio.sleep(args.interval)
                        # Sign-ins and sign-outs from other terminals
                        auth.reload()
                        if args.poll:
                            await sync.refresh()
                finally:
                    remove()
    finally:
        await store.close()


def cmd_watch(args):
    """Show the bookmark list and keep it up to date."""
    asyncio.run(_watch(args))


def cmd_serve(args):
    """Serve the check-user lookup endpoint."""
    from smartmarks.lookup import run_server
    console.print(f"[green]Serving check-user on http://{args.host}:{args.port}[/green]")
    run_server(host=args.host, port=args.port)


def cmd_config(args):
    """Manage configuration."""
    config = get_config()

    if args.action == "show":
        if args.key:
            if not hasattr(config, args.key):
                console.print(f"[red]Unknown config key: {args.key}[/red]")
                sys.exit(1)
            print(getattr(config, args.key))
        else:
            print(json.dumps(asdict(config), indent=2))

    elif args.action == "set":
        if not args.key or args.value is None:
            console.print("[red]Usage: smartmarks config set KEY VALUE[/red]")
            sys.exit(1)
        if not hasattr(config, args.key):
            console.print(f"[red]Unknown config key: {args.key}[/red]")
            sys.exit(1)
        setattr(config, args.key, _coerce(getattr(config, args.key), args.value))
        config.save()
        if not args.quiet:
            console.print(f"[green]Set {args.key} = {args.value}[/green]")

    elif args.action == "init":
        config.save()
        console.print("[green]Created config at ~/.config/smartmarks/config.toml[/green]")


def _coerce(current, value: str):
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartmarks",
        description="SmartMarks: personal bookmarks with live updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  smartmarks login u1 --email me@example.com
  smartmarks add example.com --title "Example"
  smartmarks list --sort oldest
  smartmarks delete 3f2c9a...
  smartmarks watch
  smartmarks serve --port 3000

Configuration:
  Default database: ./smartmarks.db or from config
  Config file: ~/.config/smartmarks/config.toml
  Environment: SMARTMARKS_DATABASE, SMARTMARKS_OUTPUT_FORMAT
        """
    )

    parser.add_argument("--db", help="Database file (default: smartmarks.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("--session-file", help="Session token file")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-o", "--output", choices=["table", "json", "plain", "urls"],
                        help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    login = subparsers.add_parser("login", help="Sign in")
    login.add_argument("user_id", help="User identifier")
    login.add_argument("--email", help="Account email")
    login.set_defaults(func=cmd_login)

    logout = subparsers.add_parser("logout", help="Sign out")
    logout.set_defaults(func=cmd_logout)

    whoami = subparsers.add_parser("whoami", help="Show the signed-in user")
    whoami.set_defaults(func=cmd_whoami)

    bm_list = subparsers.add_parser("list", help="List bookmarks")
    bm_list.add_argument("--sort", choices=["newest", "oldest"], help="Sort order")
    bm_list.set_defaults(func=cmd_list)

    bm_add = subparsers.add_parser("add", help="Add a bookmark")
    bm_add.add_argument("url", help="URL (https:// is added when no scheme is given)")
    bm_add.add_argument("--title", "-t", help="Title (defaults to the URL)")
    bm_add.set_defaults(func=cmd_add)

    bm_delete = subparsers.add_parser("delete", help="Delete bookmarks")
    bm_delete.add_argument("ids", nargs="+", help="Bookmark IDs")
    bm_delete.set_defaults(func=cmd_delete)

    watch = subparsers.add_parser("watch", help="Live view of your bookmarks")
    watch.add_argument("--sort", choices=["newest", "oldest"], help="Sort order")
    watch.add_argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL,
                       help="Seconds between checks for changes (default: 1)")
    watch.add_argument("--poll", action="store_true",
                       help="Also re-fetch the whole list on every check")
    watch.set_defaults(func=cmd_watch)

    serve = subparsers.add_parser("serve", help="Serve the check-user endpoint")
    serve.add_argument("--port", "-p", type=int, default=8000,
                       help="Port to listen on (default: 8000)")
    serve.add_argument("--host", "-H", default="127.0.0.1",
                       help="Host to bind to (default: 127.0.0.1)")
    serve.set_defaults(func=cmd_serve)

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("action", choices=["show", "set", "init"])
    config_parser.add_argument("key", nargs="?", help="Config key")
    config_parser.add_argument("value", nargs="?", help="Config value (for set)")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.session_file:
        config_args["session_file"] = args.session_file

    config = init_config(
        database=args.db,
        config_file=Path(args.config) if args.config else None,
        **config_args
    )
    setup_logging(config.log_level, args.verbose, color=config.color_output)
    console.no_color = not config.color_output

    if not args.output:
        args.output = config.output_format

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
