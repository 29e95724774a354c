"""
Connection registry for the Chronoscribe relay.

Tracks every live connection and its role, keeps source names unique and
assigns source colors. Source connect and disconnect notifications are handed
to a notify callback, which the relay wires to its broadcast primitive.
"""

import asyncio
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from .config import config
from .models import ConnectionRole, Source, now_iso
from .protocol import (
    Envelope,
    MessageType,
    SourceConnectedPayload,
    SourceDisconnectedPayload,
    make_message,
)

logger = logging.getLogger(__name__)

Notify = Callable[[Envelope], None]

# Source colors end up in viewers' style attributes: hex codes or CSS names only.
COLOR_PATTERN = re.compile(r'#[0-9a-fA-F]{3}|#[0-9a-fA-F]{6}|[a-zA-Z]+')


@dataclass
class Connection:
    """A live transport endpoint known to the relay."""

    id: str
    transport: Any = None
    role: ConnectionRole = ConnectionRole.UNRESOLVED
    source: Optional[Source] = None
    outbox: Optional[asyncio.Queue] = field(default=None, repr=False)
    writer: Optional[asyncio.Task] = field(default=None, repr=False)


class ConnectionRegistry:
    """Owns the connection set and the source name index."""

    def __init__(self, palette: Optional[List[str]] = None, notify: Optional[Notify] = None):
        """
        Initialize the registry.

        Args:
            palette: Source colors handed out round-robin
            notify: Called with SOURCE_CONNECTED / SOURCE_DISCONNECTED messages
        """
        self._connections: Dict[str, Connection] = {}
        self._used_names: Set[str] = set()
        self._palette = list(palette or config.relay.palette)
        self._color_index = 0
        self._notify = notify
        self._lock = threading.Lock()

    def set_notify(self, notify: Notify) -> None:
        self._notify = notify

    def _emit(self, message: Envelope) -> None:
        if self._notify is not None:
            self._notify(message)

    def _next_color(self) -> str:
        # Shared across all sources and never reset, so a source that
        # reconnects usually comes back with a different color.
        color = self._palette[self._color_index % len(self._palette)]
        self._color_index += 1
        return color

    def _unique_name(self, base_name: str) -> str:
        name = base_name
        counter = 1
        while name in self._used_names:
            name = f"{base_name}-{counter}"
            counter += 1
        return name

    def add_connection(self, conn_id: str, transport: Any = None) -> Connection:
        """
        Track a freshly accepted connection whose role is not yet known.

        Args:
            conn_id: Unique connection ID
            transport: The underlying WebSocket

        Returns:
            Connection: The new registry entry
        """
        with self._lock:
            connection = Connection(id=conn_id, transport=transport)
            self._connections[conn_id] = connection
        logger.debug(f"Connection opened: {conn_id}")
        return connection

    def register_viewer(self, conn_id: str) -> Connection:
        """
        Mark a connection as a viewer.

        Args:
            conn_id: Connection ID

        Returns:
            Connection: The viewer connection
        """
        with self._lock:
            connection = self._connections.get(conn_id)
            if connection is None:
                connection = Connection(id=conn_id)
                self._connections[conn_id] = connection
            if connection.role == ConnectionRole.UNRESOLVED:
                connection.role = ConnectionRole.VIEWER
        logger.info(f"Viewer connected: {conn_id}")
        return connection

    def register_source(self, conn_id: str, requested_name: str, preferred_color: Optional[str] = None) -> Source:
        """
        Mark a connection as a source and give it a display identity.

        A taken name is resolved by appending -1, -2, ... until it is free.
        A preferred color that is a hex code or CSS color name is used as-is;
        otherwise the next palette color is assigned. Viewers are notified with SOURCE_CONNECTED.

        Args:
            conn_id: Connection ID
            requested_name: Name the producer asked for
            preferred_color: Optional color the producer asked for

        Returns:
            Source: The registered source
        """
        with self._lock:
            connection = self._connections.get(conn_id)
            if connection is None:
                connection = Connection(id=conn_id)
                self._connections[conn_id] = connection

            name = self._unique_name(requested_name)
            self._used_names.add(name)
            if preferred_color and COLOR_PATTERN.fullmatch(preferred_color):
                color = preferred_color
            else:
                if preferred_color:
                    logger.warning(f"Ignoring invalid color {preferred_color!r} for source {name}")
                color = self._next_color()
            source = Source(
                id=conn_id,
                name=name,
                color=color,
                connected_at=now_iso(),
                connected=True
            )
            connection.role = ConnectionRole.SOURCE
            connection.source = source

        logger.info(f"Source connected: {name} ({conn_id})")
        self._emit(make_message(MessageType.SOURCE_CONNECTED, SourceConnectedPayload(source=source)))
        return source

    def remove_connection(self, conn_id: str) -> Optional[Connection]:
        """
        Forget a connection. Removing an unknown ID is a no-op.

        A source releases its name and viewers are notified with
        SOURCE_DISCONNECTED.

        Args:
            conn_id: Connection ID

        Returns:
            Optional[Connection]: The removed connection, if it was known
        """
        with self._lock:
            connection = self._connections.pop(conn_id, None)
            if connection is None:
                return None
            source = connection.source
            if connection.role == ConnectionRole.SOURCE and source is not None:
                self._used_names.discard(source.name)
                source.connected = False

        if connection.role == ConnectionRole.SOURCE and source is not None:
            logger.info(f"Source disconnected: {source.name}")
            self._emit(make_message(
                MessageType.SOURCE_DISCONNECTED,
                SourceDisconnectedPayload(source_id=conn_id, source_name=source.name)
            ))
        elif connection.role == ConnectionRole.VIEWER:
            logger.info(f"Viewer disconnected: {conn_id}")
        else:
            logger.debug(f"Unresolved connection closed: {conn_id}")
        return connection

    def get(self, conn_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(conn_id)

    def list_sources(self) -> List[Source]:
        """Get every registered source, oldest connection first."""
        with self._lock:
            return [
                c.source for c in self._connections.values()
                if c.role == ConnectionRole.SOURCE and c.source is not None
            ]

    def list_viewers(self) -> List[Connection]:
        """Get every viewer connection."""
        with self._lock:
            return [c for c in self._connections.values() if c.role == ConnectionRole.VIEWER]

    def stats(self) -> Dict[str, int]:
        """
        Get connection statistics.

        Returns:
            Dict with source, viewer and total counts
        """
        with self._lock:
            sources = sum(1 for c in self._connections.values() if c.role == ConnectionRole.SOURCE)
            viewers = sum(1 for c in self._connections.values() if c.role == ConnectionRole.VIEWER)
        return {'sources': sources, 'viewers': viewers, 'total': sources + viewers}
