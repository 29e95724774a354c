"""Tests for the relay core: level mapping, handshakes and fan-out."""

import asyncio

import pytest

from chronoscribe.config import RelayConfig
from chronoscribe.models import ConnectionRole, LogLevel
from chronoscribe.protocol import LogLinePayload, error_message
from chronoscribe.relay import RelayCore, normalize_level

from fakes import FakeWebSocket, settle


@pytest.mark.parametrize("level, expected", [
    ("warning", LogLevel.WARN),
    ("WARN", LogLevel.WARN),
    ("Wrn", LogLevel.INFO),
    ("err", LogLevel.ERROR),
    ("DBG", LogLevel.DEBUG),
    ("debug", LogLevel.DEBUG),
    ("  error ", LogLevel.ERROR),
    ("notice", LogLevel.INFO),
    ("", LogLevel.INFO),
])
def test_normalize_level(level, expected):
    assert normalize_level(level) == expected


def line(content: str, level: str = "INFO") -> LogLinePayload:
    return LogLinePayload(content=content, raw=content, level=level)


def test_viewer_handshake_is_welcome_sources_then_replay():
    async def scenario():
        relay = RelayCore(RelayConfig(buffer_size=2))
        source_ws = FakeWebSocket()
        relay.open_connection(source_ws, "s1")
        relay.promote_source("s1", "api")
        for n in range(3):
            relay.ingest("s1", line(f"line {n}", "warning"))

        viewer_ws = FakeWebSocket()
        relay.open_connection(viewer_ws, "v1")
        assert relay.promote_viewer("v1") is not None
        await settle()

        assert viewer_ws.types() == ["WELCOME", "SOURCES_LIST", "LOGS_BATCH"]
        welcome, sources, batch = viewer_ws.sent
        assert welcome["payload"]["role"] == "VIEWER"
        assert welcome["payload"]["clientId"] == "v1"
        assert "color" not in welcome["payload"]
        assert [s["name"] for s in sources["payload"]["sources"]] == ["api"]
        records = batch["payload"]["records"]
        assert [r["content"] for r in records] == ["line 1", "line 2"]
        assert all(r["level"] == "WARN" and r["sourceName"] == "api" for r in records)

        relay.close_connection("s1")
        relay.close_connection("v1")

    asyncio.run(scenario())


def test_source_gets_welcome_with_color_and_viewers_see_it():
    async def scenario():
        relay = RelayCore()
        viewer_ws = FakeWebSocket()
        relay.open_connection(viewer_ws, "v1")
        relay.promote_viewer("v1")

        source_ws = FakeWebSocket()
        relay.open_connection(source_ws, "s1")
        source = relay.promote_source("s1", "api", "#FF6B6B")
        await settle()

        assert source.color == "#FF6B6B"
        assert source_ws.types() == ["WELCOME"]
        assert source_ws.sent[0]["payload"]["role"] == "SOURCE"
        assert source_ws.sent[0]["payload"]["color"] == "#FF6B6B"
        assert viewer_ws.types()[-1] == "SOURCE_CONNECTED"

        # roles are final
        assert relay.promote_viewer("s1") is None
        assert relay.promote_source("v1", "other") is None
        assert relay.registry.get("v1").role == ConnectionRole.VIEWER

        relay.close_connection("s1")
        await settle()
        assert viewer_ws.types()[-1] == "SOURCE_DISCONNECTED"
        relay.close_connection("v1")

    asyncio.run(scenario())


def test_broadcast_reaches_viewers_in_ingest_order():
    async def scenario():
        relay = RelayCore()
        viewers = [FakeWebSocket() for _ in range(3)]
        for n, ws in enumerate(viewers):
            relay.open_connection(ws, f"v{n}")
            relay.promote_viewer(f"v{n}")
        relay.open_connection(FakeWebSocket(), "s1")
        relay.promote_source("s1", "api")

        for n in range(5):
            relay.ingest("s1", line(f"line {n}"))
        await settle()

        for ws in viewers:
            contents = [m["payload"]["record"]["content"] for m in ws.sent if m["type"] == "LOG_BROADCAST"]
            assert contents == [f"line {n}" for n in range(5)]

    asyncio.run(scenario())


def test_failing_or_stuck_viewer_does_not_affect_others():
    async def scenario():
        relay = RelayCore(RelayConfig(outbox_size=2))
        healthy = FakeWebSocket()
        broken = FakeWebSocket(fail=True)
        stuck = FakeWebSocket(block=True)
        for conn_id, ws in (("healthy", healthy), ("broken", broken), ("stuck", stuck)):
            relay.open_connection(ws, conn_id)
            relay.promote_viewer(conn_id)
        await settle()

        relay.open_connection(FakeWebSocket(), "s1")
        relay.promote_source("s1", "api")
        await settle()
        for n in range(10):
            relay.ingest("s1", line(f"line {n}"))
            await settle()

        contents = [m["payload"]["record"]["content"] for m in healthy.sent if m["type"] == "LOG_BROADCAST"]
        assert contents == [f"line {n}" for n in range(10)]
        assert broken.sent == []
        assert relay.broadcast(error_message("PING", "still there")) == 2

    asyncio.run(scenario())


def test_disconnected_transport_is_skipped():
    async def scenario():
        relay = RelayCore()
        ws = FakeWebSocket()
        relay.open_connection(ws, "v1")
        ws.client_state = "DISCONNECTED"
        relay.promote_viewer("v1")
        await settle()
        assert ws.sent == []

    asyncio.run(scenario())


def test_ingest_from_non_source_is_refused():
    async def scenario():
        relay = RelayCore()
        viewer_ws = FakeWebSocket()
        relay.open_connection(viewer_ws, "v1")
        relay.open_connection(FakeWebSocket(), "pending")
        relay.promote_viewer("v1")

        assert relay.ingest("pending", line("nope")) is None
        assert relay.ingest("v1", line("nope")) is None
        assert relay.ingest("missing", line("nope")) is None
        assert len(relay.buffer) == 0

    asyncio.run(scenario())


def test_send_and_close_connection():
    async def scenario():
        relay = RelayCore()
        ws = FakeWebSocket()
        connection = relay.open_connection(ws)
        assert relay.send(connection.id, error_message("NOT_A_SOURCE", "register first"))
        await settle()
        assert ws.sent == [{"type": "ERROR", "payload": {"code": "NOT_A_SOURCE", "message": "register first"}}]

        relay.close_connection(connection.id)
        relay.close_connection(connection.id)
        await settle()
        assert connection.writer.cancelled()
        assert relay.send(connection.id, error_message("X", "y")) is False

    asyncio.run(scenario())


def test_stats_merge_registry_and_buffer():
    async def scenario():
        relay = RelayCore(RelayConfig(buffer_size=5))
        relay.open_connection(FakeWebSocket(), "s1")
        relay.promote_source("s1", "api")
        relay.ingest("s1", line("hello"))
        return relay.stats()

    assert asyncio.run(scenario()) == {
        "sources": 1, "viewers": 0, "total": 1, "buffered_logs": 1, "max_buffer_size": 5
    }


def test_level_priority_orders_by_severity():
    levels = sorted([LogLevel.ERROR, LogLevel.DEBUG, LogLevel.WARN, LogLevel.INFO], key=lambda l: l.priority)
    assert levels == [LogLevel.DEBUG, LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR]
