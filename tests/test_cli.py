"""
Tests for smartmarks/cli.py

Drives main() end to end against a temporary database and session file.
"""
import asyncio
import json
from unittest.mock import patch

import pytest
from rich.text import Text

from smartmarks import cli as cli_module
from smartmarks.auth import LocalAuth
from smartmarks.cli import _watch, build_parser, main
from smartmarks.config import init_config
from smartmarks.db import Database

from conftest import wait_until


@pytest.fixture
def cli(tmp_path):
    """Run the CLI with an isolated database and session file."""
    base = ["--db", str(tmp_path / "cli.db"), "--session-file", str(tmp_path / "session.json")]

    def run(*argv):
        main(base + list(argv))

    return run


def exit_code(run, *argv):
    with pytest.raises(SystemExit) as exc_info:
        run(*argv)
    return exc_info.value.code


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_sort_choices(self):
        args = build_parser().parse_args(["list", "--sort", "oldest"])
        assert args.sort == "oldest"
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "--sort", "title"])


class TestAuthCommands:
    def test_login_and_whoami(self, cli, capsys):
        cli("login", "u1", "--email", "u1@example.com")
        assert "Signed in as u1" in capsys.readouterr().out

        cli("-o", "json", "whoami")
        assert json.loads(capsys.readouterr().out) == {"user_id": "u1", "email": "u1@example.com"}

    def test_login_requires_user_id(self, cli, capsys):
        assert exit_code(cli, "login", "  ") == 1
        assert "A user id is required" in capsys.readouterr().out

    def test_logout(self, cli, capsys):
        cli("login", "u1")
        cli("logout")
        capsys.readouterr()

        assert exit_code(cli, "whoami") == 1
        assert "Not signed in" in capsys.readouterr().out


class TestBookmarkCommands:
    def test_list_requires_session(self, cli, capsys):
        assert exit_code(cli, "list") == 1
        assert "Not signed in" in capsys.readouterr().out

    def test_empty_list(self, cli, capsys):
        cli("login", "u1")
        capsys.readouterr()
        cli("list")
        assert "No bookmarks yet" in capsys.readouterr().out

    def test_add_and_list(self, cli, capsys):
        cli("login", "u1")
        cli("add", "example.com", "--title", "Example")
        cli("add", "http://python.org")
        assert "Added bookmark" in capsys.readouterr().out

        cli("-o", "urls", "list")
        assert capsys.readouterr().out.split() == ["http://python.org", "https://example.com"]

        cli("-o", "urls", "list", "--sort", "oldest")
        assert capsys.readouterr().out.split() == ["https://example.com", "http://python.org"]

    def test_add_rejects_invalid_url(self, cli, capsys):
        cli("login", "u1")
        capsys.readouterr()
        assert exit_code(cli, "add", "exa mple") == 1
        assert "Invalid URL format" in capsys.readouterr().out

    def test_json_output_and_delete(self, cli, capsys):
        cli("login", "u1")
        cli("add", "example.com")
        capsys.readouterr()

        cli("-o", "json", "list")
        bookmarks = json.loads(capsys.readouterr().out)
        assert len(bookmarks) == 1
        assert bookmarks[0]["title"] == "https://example.com"

        cli("-q", "delete", bookmarks[0]["id"])
        assert capsys.readouterr().out.strip() == "1"

        cli("-o", "json", "list")
        assert json.loads(capsys.readouterr().out) == []

    def test_delete_unknown(self, cli, capsys):
        cli("login", "u1")
        capsys.readouterr()
        cli("delete", "missing")
        assert "Bookmark not found: missing" in capsys.readouterr().out

    def test_users_do_not_see_each_other(self, cli, capsys):
        cli("login", "u1")
        cli("add", "example.com")
        cli("login", "u2")
        capsys.readouterr()

        cli("-o", "json", "list")
        assert json.loads(capsys.readouterr().out) == []


class TestConfigCommand:
    def test_set_and_show(self, cli, capsys):
        cli("config", "set", "default_sort", "oldest")
        cli("config", "show", "default_sort")
        assert capsys.readouterr().out.strip().endswith("oldest")

    def test_set_coerces_ints(self, cli, capsys):
        cli("-q", "config", "set", "timeout", "30")
        cli("config", "show", "timeout")
        assert capsys.readouterr().out.strip() == "30"

    def test_unknown_key(self, cli, capsys):
        assert exit_code(cli, "config", "show", "nope") == 1
        assert "Unknown config key" in capsys.readouterr().out


class TestServeCommand:
    def test_serve_runs_lookup_server(self, cli):
        with patch("smartmarks.lookup.run_server") as run_server:
            cli("serve", "--port", "3000")
        run_server.assert_called_once_with(host="127.0.0.1", port=3000)


class TestColorOutput:
    def test_color_output_disabled_from_config(self, cli, capsys, monkeypatch):
        monkeypatch.setattr(cli_module.console, "no_color", False)
        monkeypatch.setenv("SMARTMARKS_COLOR_OUTPUT", "false")

        cli("config", "show", "color_output")

        assert capsys.readouterr().out.strip() == "False"
        assert cli_module.console.no_color is True

    def test_color_output_enabled_by_default(self, cli, monkeypatch):
        monkeypatch.setattr(cli_module.console, "no_color", True)
        cli("config", "show", "color_output")
        assert cli_module.console.no_color is False


class TestWatchCommand:
    """watch follows sign-ins and writes made by other processes."""

    @pytest.mark.asyncio
    async def test_watch_sees_other_clients(self, tmp_path):
        db_path = str(tmp_path / "cli.db")
        session_file = str(tmp_path / "session.json")
        args = build_parser().parse_args(
            ["--db", db_path, "--session-file", session_file, "watch", "--interval", "0.02"]
        )
        init_config(database=db_path, session_file=session_file)
        rendered = []

        def capture(sync):
            rendered.append(sync)
            return Text("")

        with patch("smartmarks.cli.render_state", side_effect=capture):
            task = asyncio.ensure_future(_watch(args))
            await wait_until(lambda: rendered)
            sync = rendered[-1]
            assert not sync.active

            # login from another terminal
            LocalAuth(session_file=session_file).sign_in("u1")
            await wait_until(lambda: sync.active and sync.subscribed)

            # add and delete from another terminal
            writer = Database(path=db_path)
            try:
                await writer.insert("u1", "Other", "https://other.example")
                await wait_until(lambda: [b.url for b in sync.bookmarks] == ["https://other.example"])

                assert await writer.delete(sync.bookmarks[0].id, "u1") is True
                await wait_until(lambda: sync.bookmarks == ())
            finally:
                writer.engine.dispose()

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert not sync.subscribed
