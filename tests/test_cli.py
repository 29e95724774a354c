"""Tests for the command line entry point."""

import asyncio
import io
import threading

import pytest

from chronoscribe import cli
from chronoscribe.errors import ConnectFailed, ReconnectExhausted
from chronoscribe.models import LogLevel


class RecordingClient:
    """Stands in for SourceClient and records what the CLI sends."""

    instances = []

    def __init__(self, server_url, source_name, color=None):
        self.server_url = server_url
        self.source_name = source_name
        self.color = color
        self.assigned_color = "#60A5FA"
        self.sent = []
        self.closed = False
        self.runner = None
        self._stopped = None
        RecordingClient.instances.append(self)

    async def connect(self):
        self._stopped = asyncio.Event()
        self.runner = asyncio.create_task(self._stopped.wait())

    async def send_log(self, parsed, raw):
        self.sent.append((parsed.level, raw))

    async def wait(self):
        await self.runner

    async def close(self):
        self.closed = True
        if self._stopped is not None:
            self._stopped.set()


class UnreachableClient(RecordingClient):
    async def connect(self):
        raise ConnectFailed("Could not connect to ws://localhost:1: refused")


class GivingUpClient(RecordingClient):
    async def connect(self):
        async def give_up():
            await asyncio.sleep(0)
            raise ReconnectExhausted(10)

        self.runner = asyncio.create_task(give_up())


class BlockingStream:
    """A stdin that never produces a line until released."""

    def __init__(self):
        self.released = threading.Event()

    def readline(self):
        self.released.wait()
        return ''

    def isatty(self):
        return False


@pytest.fixture(autouse=True)
def reset_instances():
    RecordingClient.instances = []


def test_parser_defaults():
    args = cli.create_parser().parse_args([])
    assert args.server == "ws://localhost:3210"
    assert args.serve is False
    assert args.open is True
    assert args.dashboard is True
    assert args.ws_port == 3210
    assert args.http_port == 3211


def test_invalid_server_url_is_rejected(capsys):
    assert cli.main(["--server", "http://localhost:3210"]) == 1
    assert "Invalid server URL" in capsys.readouterr().err


def test_pipes_stdin_to_the_relay(monkeypatch, capsys):
    monkeypatch.setattr(cli, "SourceClient", RecordingClient)
    monkeypatch.setattr("sys.stdin", io.StringIO("[ERROR] boom\n\nready in 3s\n"))

    assert cli.main(["--name", "web", "--color", "#FF6B6B", "-s", "ws://relay:3210"]) == 0

    client = RecordingClient.instances[0]
    assert client.source_name == "web"
    assert client.color == "#FF6B6B"
    assert client.server_url == "ws://relay:3210"
    assert client.sent == [(LogLevel.ERROR, "[ERROR] boom"), (LogLevel.INFO, "ready in 3s")]
    assert client.closed
    assert "Processed 2 logs" in capsys.readouterr().err


def test_default_source_name(monkeypatch):
    monkeypatch.setattr(cli, "SourceClient", RecordingClient)
    monkeypatch.setattr("sys.stdin", io.StringIO(""))

    assert cli.main([]) == 0
    assert RecordingClient.instances[0].source_name.startswith("cli-")


def test_custom_level_pattern_is_used(monkeypatch):
    monkeypatch.setattr(cli, "SourceClient", RecordingClient)
    monkeypatch.setattr("sys.stdin", io.StringIO("web WRN slow\n"))

    assert cli.main(["--level-pattern", r"^\w+ (?P<level>\w+)"]) == 0
    assert RecordingClient.instances[0].sent == [(LogLevel.WARN, "web WRN slow")]


def test_unreachable_relay_exits_with_error(monkeypatch, capsys):
    monkeypatch.setattr(cli, "SourceClient", UnreachableClient)

    assert cli.main(["--name", "web"]) == 1
    assert "Failed to connect to relay" in capsys.readouterr().err


def test_lost_relay_exits_with_error(monkeypatch, capsys):
    stream = BlockingStream()
    monkeypatch.setattr(cli, "SourceClient", GivingUpClient)
    monkeypatch.setattr("sys.stdin", stream)

    try:
        assert cli.main(["--name", "web"]) == 1
    finally:
        stream.released.set()
    assert RecordingClient.instances[0].closed
    assert "Lost connection to relay" in capsys.readouterr().err


def test_keyboard_interrupt_exits_130(monkeypatch):
    async def interrupted(args):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "pipe_stdin", interrupted)
    assert cli.main(["--name", "web"]) == 130


def test_serve_mode_passes_options_through(monkeypatch):
    calls = []

    async def fake_serve(**kwargs):
        calls.append(kwargs)

    monkeypatch.setattr(cli, "serve", fake_serve)
    assert cli.main(["--serve", "--ws-port", "4000", "--http-port", "4001", "--no-open"]) == 0
    assert calls == [{
        "ws_port": 4000,
        "http_port": 4001,
        "dashboard": True,
        "dashboard_dir": None,
        "open_browser": False,
    }]

    calls.clear()
    assert cli.main(["--serve", "--no-dashboard"]) == 0
    assert calls[0]["dashboard"] is False
    assert calls[0]["open_browser"] is False
