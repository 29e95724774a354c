"""
Source client for the Chronoscribe CLI.

Keeps a WebSocket connection to the relay open while log lines are piped in.
Lines produced while the connection is not ready are held in a bounded buffer
and flushed in order once the relay welcomes the client again. Reconnection
uses exponential backoff and gives up after a fixed number of attempts, so a
wrong server address fails loudly instead of retrying forever.
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from .config import ClientConfig, config
from .errors import ConnectFailed, InvalidPayload, ReconnectExhausted
from .parser import ParsedLog
from .protocol import (
    Malformed,
    MessageType,
    WelcomePayload,
    decode,
    encode,
    heartbeat_message,
    log_message,
    parse_payload,
    register_message,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ClientState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    REGISTERING = "REGISTERING"
    READY = "READY"
    CLOSED = "CLOSED"


def _default_connector(url: str) -> Awaitable[Any]:
    return websockets.connect(url)


def _error_text(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("message", payload))
    return str(payload)


class SourceClient:
    """WebSocket client that streams log lines to the relay as one source."""

    def __init__(self, server_url: str, source_name: str, color: Optional[str] = None,
                 client_config: Optional[ClientConfig] = None,
                 connector: Optional[Connector] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize the client.

        Args:
            server_url: Relay WebSocket URL
            source_name: Name to register under (the relay may suffix it)
            color: Optional preferred badge color
            client_config: Reconnect, buffer and heartbeat settings
            connector: Opens a transport for a URL (defaults to websockets.connect)
            sleep: Coroutine used for reconnect backoff delays
        """
        self.server_url = server_url
        self.source_name = source_name
        self.color = color
        self.config = client_config or config.client
        self.state = ClientState.DISCONNECTED
        self.client_id: Optional[str] = None
        self.assigned_color: Optional[str] = None

        self._connector = connector or _default_connector
        self._sleep = sleep
        self._buffer: deque = deque(maxlen=self.config.send_buffer_size)
        self._transport: Any = None
        self._attempts = 0
        self._closing = False
        self._runner: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None

    @property
    def buffered(self) -> int:
        """Number of messages waiting for the connection to become ready."""
        return len(self._buffer)

    @property
    def runner(self) -> Optional[asyncio.Task]:
        """Background task that receives, heartbeats and reconnects."""
        return self._runner

    async def connect(self) -> None:
        """
        Open the first connection and register as a source.

        Raises:
            ConnectFailed: If the relay cannot be reached or does not welcome us
        """
        try:
            await self._open()
        except TRANSPORT_ERRORS as e:
            await self._drop_connection()
            raise ConnectFailed(f"Could not connect to {self.server_url}: {e}") from e
        self._runner = asyncio.create_task(self._maintain())

    async def wait(self) -> None:
        """
        Wait until the client stops.

        Raises:
            ReconnectExhausted: If the connection could not be re-established
        """
        if self._runner is not None:
            await self._runner

    async def send_log(self, parsed: ParsedLog, raw: str) -> None:
        """
        Send a parsed log line, or buffer it until the connection is ready.

        Args:
            parsed: Result of parsing the line
            raw: The original line
        """
        frame = encode(log_message(
            parsed.content,
            raw,
            parsed.level.value,
            parsed.original_timestamp
        ))

        if self.state == ClientState.READY and self._transport is not None:
            try:
                await self._transport.send(frame)
                return
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Send failed, buffering until reconnected: {e}")
                self.state = ClientState.DISCONNECTED

        # Oldest entries fall off the left once the buffer is full.
        self._buffer.append(frame)

    async def close(self) -> None:
        """Stop reconnecting and close the connection."""
        self._closing = True
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            await asyncio.gather(self._runner, return_exceptions=True)
        await self._drop_connection()
        self.state = ClientState.CLOSED

    # ------------------------------------------------------------------
    # Connection cycle
    # ------------------------------------------------------------------

    async def _open(self) -> None:
        self.state = ClientState.CONNECTING
        transport = await self._connector(self.server_url)
        self._transport = transport

        self.state = ClientState.REGISTERING
        await transport.send(encode(register_message(self.source_name, self.color)))
        await asyncio.wait_for(self._await_welcome(transport), timeout=self.config.registration_timeout)

        self._attempts = 0
        await self._flush(transport)
        self.state = ClientState.READY
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(transport))

    async def _await_welcome(self, transport: Any) -> None:
        while True:
            message = decode(await transport.recv())
            if isinstance(message, Malformed):
                logger.debug(f"Ignoring malformed message from relay: {message.reason}")
                continue
            if message.message_type == MessageType.WELCOME:
                try:
                    welcome: WelcomePayload = parse_payload(message)
                except InvalidPayload as e:
                    logger.warning(f"Ignoring invalid welcome from relay: {e}")
                    continue
                self.client_id = welcome.client_id
                self.assigned_color = welcome.color
                logger.info(f"Registered as \"{self.source_name}\" (color: {self.assigned_color})")
                return
            if message.message_type == MessageType.ERROR:
                logger.error(f"Relay error: {_error_text(message.payload)}")

    async def _flush(self, transport: Any) -> None:
        if not self._buffer:
            return
        logger.info(f"Sending {len(self._buffer)} buffered messages...")
        # Lines arriving during the flush are appended and picked up here too.
        while self._buffer:
            frame = self._buffer.popleft()
            try:
                await transport.send(frame)
            except TRANSPORT_ERRORS:
                self._buffer.appendleft(frame)
                raise

    async def _maintain(self) -> None:
        while not self._closing:
            await self._receive_until_closed(self._transport)
            await self._drop_connection()
            if self._closing:
                break
            await self._reconnect()

    async def _receive_until_closed(self, transport: Any) -> None:
        while True:
            try:
                frame = await transport.recv()
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Connection to {self.server_url} lost: {e}")
                return
            message = decode(frame)
            if isinstance(message, Malformed):
                continue
            if message.message_type == MessageType.ERROR:
                logger.error(f"Relay error: {_error_text(message.payload)}")

    async def _reconnect(self) -> None:
        max_attempts = self.config.max_attempts
        while not self._closing:
            if self._attempts >= max_attempts:
                logger.error("Max reconnection attempts reached. Giving up.")
                self.state = ClientState.CLOSED
                raise ReconnectExhausted(self._attempts)

            delay = self.config.base_delay * (2 ** self._attempts)
            self._attempts += 1
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._attempts}/{max_attempts})...")
            await self._sleep(delay)

            try:
                await self._open()
                logger.info(f"Reconnected to {self.server_url}")
                return
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Reconnection failed: {e}")
                await self._drop_connection()

    async def _drop_connection(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None
        transport, self._transport = self._transport, None
        if self.state != ClientState.CLOSED:
            self.state = ClientState.DISCONNECTED
        if transport is not None:
            try:
                await transport.close()
            except TRANSPORT_ERRORS as e:
                logger.debug(f"Error while closing transport: {e}")

    async def _heartbeat_loop(self, transport: Any) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            try:
                await transport.send(encode(heartbeat_message()))
            except TRANSPORT_ERRORS:
                return
