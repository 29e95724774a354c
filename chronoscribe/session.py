"""
Relay-side connection session for Chronoscribe.

A session drives one WebSocket from accept to close. A connection that sends
SOURCE_REGISTER within the grace window becomes a source; one that stays
silent becomes a viewer. This lets the CLI and the browser dashboard share a
single endpoint without a mode flag in the handshake.
"""

import asyncio
import logging
from typing import Optional, Union

from fastapi import WebSocket, WebSocketDisconnect

from .errors import InvalidPayload
from .models import ConnectionRole
from .protocol import (
    LogLinePayload,
    Malformed,
    MessageType,
    RegisterSourcePayload,
    decode,
    error_message,
    parse_payload,
)
from .relay import RelayCore

logger = logging.getLogger(__name__)


class RelaySession:
    """Per-connection state machine: UNRESOLVED -> SOURCE | VIEWER -> closed."""

    def __init__(self, relay: RelayCore, websocket: WebSocket, grace_window: Optional[float] = None):
        self.relay = relay
        self.websocket = websocket
        self.grace_window = relay.config.grace_window if grace_window is None else grace_window
        self.conn_id: Optional[str] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def role(self) -> ConnectionRole:
        connection = self.relay.registry.get(self.conn_id)
        return connection.role if connection is not None else ConnectionRole.UNRESOLVED

    async def run(self) -> None:
        """Serve the connection until the transport closes. Never raises."""
        connection = self.relay.open_connection(self.websocket)
        self.conn_id = connection.id
        try:
            await self._resolve_role()
            while True:
                self._handle(await self._next_frame())
        except WebSocketDisconnect:
            logger.debug(f"WebSocket closed by client: {self.conn_id}")
        except Exception as e:
            logger.error(f"WebSocket error for {self.conn_id}: {e}")
        finally:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self.relay.close_connection(self.conn_id)

    async def _resolve_role(self) -> None:
        # Race the next inbound frame against the grace deadline. The pending
        # receive is kept, not cancelled, when the deadline wins.
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.grace_window

        while self.role == ConnectionRole.UNRESOLVED:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            if self._pending is None:
                self._pending = asyncio.ensure_future(self._receive())
            done, _ = await asyncio.wait({self._pending}, timeout=remaining)
            if not done:
                break
            frame = self._pending.result()
            self._pending = None
            self._handle(frame)

        if self.role == ConnectionRole.UNRESOLVED:
            self.relay.promote_viewer(self.conn_id)

    async def _next_frame(self) -> Union[str, bytes]:
        if self._pending is not None:
            pending, self._pending = self._pending, None
            return await pending
        return await self._receive()

    async def _receive(self) -> Union[str, bytes]:
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", 1000))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    def _handle(self, frame: Union[str, bytes]) -> None:
        message = decode(frame)
        if isinstance(message, Malformed):
            logger.warning(f"Invalid message from {self.conn_id}: {message.reason}")
            return

        message_type = message.message_type
        if message_type is None:
            logger.debug(f"Ignoring unknown message type {message.type!r} from {self.conn_id}")
            return

        try:
            if message_type == MessageType.SOURCE_REGISTER:
                self._on_register(parse_payload(message))
            elif message_type == MessageType.LOG:
                self._on_log(parse_payload(message))
            elif message_type == MessageType.HEARTBEAT:
                # Liveness is enforced by transport-level ping/pong.
                parse_payload(message)
            else:
                logger.debug(f"Ignoring {message.type} sent by client {self.conn_id}")
        except InvalidPayload as e:
            logger.warning(f"{e} (from {self.conn_id})")
            self.relay.send(self.conn_id, error_message("INVALID_PAYLOAD", str(e)))

    def _on_register(self, payload: RegisterSourcePayload) -> None:
        if self.role != ConnectionRole.UNRESOLVED:
            self.relay.send(self.conn_id, error_message(
                "ROLE_ALREADY_RESOLVED",
                f"Connection is already registered as {self.role.value}"
            ))
            return
        self.relay.promote_source(self.conn_id, payload.name, payload.color)

    def _on_log(self, payload: LogLinePayload) -> None:
        if self.role == ConnectionRole.UNRESOLVED:
            # Nothing may precede WELCOME, so an unregistered LOG is dropped quietly.
            logger.debug(f"Dropping LOG from unregistered connection {self.conn_id}")
            return
        if self.role != ConnectionRole.SOURCE:
            self.relay.send(self.conn_id, error_message(
                "NOT_A_SOURCE",
                "Send SOURCE_REGISTER before LOG messages"
            ))
            return
        self.relay.ingest(self.conn_id, payload)
