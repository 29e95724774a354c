"""Shared fakes for the Chronoscribe test suite."""

import asyncio
import json

from starlette.websockets import WebSocketState

from chronoscribe.models import ConnectionRole
from chronoscribe.protocol import MessageType, WelcomePayload, encode, make_message


class FakeWebSocket:
    """Relay-side transport that records every frame sent to it."""

    def __init__(self, fail: bool = False, block: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.fail = fail
        self.block = block

    async def send_text(self, data: str) -> None:
        if self.block:
            await asyncio.Event().wait()
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(data))

    def types(self):
        return [m["type"] for m in self.sent]


class FakeRelayTransport:
    """Client-side transport standing in for a websockets connection."""

    def __init__(self, welcome: bool = True, color: str = "#60A5FA"):
        self.sent = []
        self.closed = False
        self.incoming: asyncio.Queue = asyncio.Queue()
        if welcome:
            self.incoming.put_nowait(encode(make_message(
                MessageType.WELCOME,
                WelcomePayload(version="0.1.0", client_id="conn-1", role=ConnectionRole.SOURCE, color=color)
            )))

    async def send(self, frame: str) -> None:
        if self.closed:
            raise ConnectionResetError("connection closed")
        self.sent.append(json.loads(frame))

    async def recv(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise ConnectionResetError("connection closed")
        return frame

    async def close(self) -> None:
        self.drop()

    def drop(self) -> None:
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(None)

    def logs(self):
        return [m["payload"]["content"] for m in self.sent if m["type"] == "LOG"]


class FakeConnector:
    """Hands out prepared transports (or raises prepared errors) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, url: str):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def settle(rounds: int = 20) -> None:
    """Let queued writer tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
