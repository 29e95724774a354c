"""
Relay core for Chronoscribe.

Turns log lines from sources into records, keeps them in the replay buffer and
fans them out to every viewer. Each connection gets its own bounded outbox
drained by a writer task, so one slow or dead viewer never holds up the
others or the sources feeding the relay.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from starlette.websockets import WebSocketState

from . import __version__
from .config import RelayConfig, config
from .models import ConnectionRole, LogLevel, LogRecord, Source, now_iso
from .protocol import (
    Envelope,
    LogBroadcastPayload,
    LogLinePayload,
    LogsBatchPayload,
    MessageType,
    SourcesListPayload,
    WelcomePayload,
    encode,
    make_message,
)
from .registry import Connection, ConnectionRegistry
from .storage import ReplayBuffer

logger = logging.getLogger(__name__)

LEVEL_ALIASES: Dict[str, LogLevel] = {
    'WARNING': LogLevel.WARN,
    'ERR': LogLevel.ERROR,
    'DBG': LogLevel.DEBUG,
}


def normalize_level(level: str) -> LogLevel:
    """
    Map a level string sent by a source onto a LogLevel.

    Matching is case-insensitive. Unrecognized values become INFO.
    """
    normalized = (level or "").strip().upper()
    if normalized in LogLevel.__members__:
        return LogLevel[normalized]
    return LEVEL_ALIASES.get(normalized, LogLevel.INFO)


def _transport_ready(transport: Any) -> bool:
    return (
        transport.client_state == WebSocketState.CONNECTED
        and transport.application_state == WebSocketState.CONNECTED
    )


class RelayCore:
    """Owns the registry and the replay buffer and moves messages between them."""

    def __init__(self, relay_config: Optional[RelayConfig] = None,
                 registry: Optional[ConnectionRegistry] = None,
                 buffer: Optional[ReplayBuffer] = None):
        self.config = relay_config or config.relay
        self.registry = registry or ConnectionRegistry(palette=self.config.palette)
        self.buffer = buffer or ReplayBuffer(self.config.buffer_size)
        self.registry.set_notify(self.broadcast)
        self.version = __version__

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def open_connection(self, transport: Any, conn_id: Optional[str] = None) -> Connection:
        """
        Register a newly accepted transport and start its writer.

        Must be called from within the running event loop.

        Args:
            transport: Accepted WebSocket
            conn_id: Optional connection ID (a UUID4 is generated otherwise)

        Returns:
            Connection: The unresolved connection
        """
        connection = self.registry.add_connection(conn_id or str(uuid.uuid4()), transport)
        connection.outbox = asyncio.Queue(maxsize=self.config.outbox_size)
        connection.writer = asyncio.create_task(self._drain(connection))
        return connection

    def close_connection(self, conn_id: str) -> None:
        """Remove a connection from the registry and stop its writer. Idempotent."""
        connection = self.registry.remove_connection(conn_id)
        if connection is not None and connection.writer is not None:
            connection.writer.cancel()

    def promote_viewer(self, conn_id: str) -> Optional[Connection]:
        """
        Resolve a connection as a viewer and queue its handshake.

        The viewer receives WELCOME, then SOURCES_LIST, then LOGS_BATCH, all
        queued before any live broadcast can reach it.
        """
        connection = self.registry.get(conn_id)
        if connection is None or connection.role != ConnectionRole.UNRESOLVED:
            return None

        self.registry.register_viewer(conn_id)
        self._enqueue(connection, encode(make_message(
            MessageType.WELCOME,
            WelcomePayload(version=self.version, client_id=conn_id, role=ConnectionRole.VIEWER)
        )))
        self._enqueue(connection, encode(make_message(
            MessageType.SOURCES_LIST,
            SourcesListPayload(sources=self.registry.list_sources())
        )))
        self._enqueue(connection, encode(make_message(
            MessageType.LOGS_BATCH,
            LogsBatchPayload(records=self.buffer.snapshot())
        )))
        return connection

    def promote_source(self, conn_id: str, name: str, color: Optional[str] = None) -> Optional[Source]:
        """
        Resolve a connection as a source and send it WELCOME with its color.

        Viewers learn about the source through SOURCE_CONNECTED.
        """
        connection = self.registry.get(conn_id)
        if connection is None or connection.role != ConnectionRole.UNRESOLVED:
            return None

        source = self.registry.register_source(conn_id, name, color)
        self._enqueue(connection, encode(make_message(
            MessageType.WELCOME,
            WelcomePayload(
                version=self.version,
                client_id=conn_id,
                role=ConnectionRole.SOURCE,
                color=source.color
            )
        )))
        return source

    # ------------------------------------------------------------------
    # Log ingestion
    # ------------------------------------------------------------------

    def ingest(self, conn_id: str, payload: LogLinePayload) -> Optional[LogRecord]:
        """
        Store a log line from a source and broadcast it to every viewer.

        Args:
            conn_id: ID of the sending connection
            payload: The validated LOG payload

        Returns:
            Optional[LogRecord]: The new record, or None if the sender is not a source
        """
        connection = self.registry.get(conn_id)
        if connection is None or connection.role != ConnectionRole.SOURCE or connection.source is None:
            return None

        record = LogRecord(
            id=str(uuid.uuid4()),
            received_at=now_iso(),
            source_name=connection.source.name,
            level=normalize_level(payload.level),
            content=payload.content,
            raw=payload.raw,
            original_timestamp=payload.original_timestamp
        )
        self.buffer.append(record)
        self.broadcast(make_message(MessageType.LOG_BROADCAST, LogBroadcastPayload(record=record)))
        return record

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def broadcast(self, message: Envelope) -> int:
        """
        Queue a message for every viewer.

        Returns:
            int: Number of viewers the message was queued for
        """
        frame = encode(message)
        delivered = 0
        for viewer in self.registry.list_viewers():
            if self._enqueue(viewer, frame):
                delivered += 1
        return delivered

    def send(self, conn_id: str, message: Envelope) -> bool:
        """Queue a message for a single connection."""
        connection = self.registry.get(conn_id)
        if connection is None:
            return False
        return self._enqueue(connection, encode(message))

    def _enqueue(self, connection: Connection, frame: str) -> bool:
        if connection.outbox is None:
            return False
        try:
            connection.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for {connection.id}, dropping message")
            return False
        return True

    async def _drain(self, connection: Connection) -> None:
        while True:
            frame = await connection.outbox.get()
            if not _transport_ready(connection.transport):
                logger.debug(f"Skipping send to {connection.id}: transport not connected")
                continue
            try:
                await connection.transport.send_text(frame)
            except Exception as e:
                logger.warning(f"Failed to send message to {connection.id}: {e}")

    def stats(self) -> Dict[str, int]:
        """Get merged connection and buffer statistics."""
        return {**self.registry.stats(), **self.buffer.stats()}
