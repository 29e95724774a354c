"""
Configuration management for Chronoscribe.

This module centralizes the relay, dashboard and CLI client settings. Every
value has a default and most can be overridden through environment variables
so the relay can be tuned without touching code.
"""

import os
from typing import List
from dataclasses import dataclass, field


# Colors are chosen for good contrast on dark backgrounds.
SOURCE_COLORS: List[str] = [
    '#60A5FA',  # Blue
    '#34D399',  # Green
    '#FBBF24',  # Yellow
    '#F87171',  # Red
    '#A78BFA',  # Purple
    '#FB923C',  # Orange
    '#2DD4BF',  # Teal
    '#F472B6',  # Pink
    '#818CF8',  # Indigo
    '#4ADE80',  # Lime
]


@dataclass
class ServerConfig:
    """Configuration for the relay and dashboard HTTP servers."""

    host: str = "0.0.0.0"
    port: int = 3210
    http_port: int = 3211
    log_level: str = "info"
    access_log: bool = False


@dataclass
class RelayConfig:
    """Configuration for connection handling inside the relay."""

    buffer_size: int = 1000
    grace_window: float = 0.1  # seconds
    ping_interval: float = 30.0  # seconds
    ping_timeout: float = 20.0  # seconds
    outbox_size: int = 1000
    palette: List[str] = field(default_factory=lambda: list(SOURCE_COLORS))


@dataclass
class ClientConfig:
    """Configuration for the producer-side source client."""

    max_attempts: int = 10
    base_delay: float = 1.0  # seconds
    send_buffer_size: int = 1000
    heartbeat_interval: float = 30.0  # seconds
    registration_timeout: float = 10.0  # seconds


class Config:
    """Main configuration class for Chronoscribe."""

    def __init__(self):
        self.server = ServerConfig(
            host=os.getenv("CHRONOSCRIBE_HOST", "0.0.0.0"),
            port=int(os.getenv("CHRONOSCRIBE_PORT", "3210")),
            http_port=int(os.getenv("CHRONOSCRIBE_HTTP_PORT", "3211")),
            log_level=os.getenv("CHRONOSCRIBE_LOG_LEVEL", "info").lower(),
            access_log=os.getenv("CHRONOSCRIBE_ACCESS_LOG", "false").lower() == "true"
        )

        self.relay = RelayConfig(
            buffer_size=int(os.getenv("CHRONOSCRIBE_BUFFER_SIZE", "1000")),
            grace_window=int(os.getenv("CHRONOSCRIBE_GRACE_MS", "100")) / 1000,
            ping_interval=float(os.getenv("CHRONOSCRIBE_PING_INTERVAL", "30")),
            ping_timeout=float(os.getenv("CHRONOSCRIBE_PING_TIMEOUT", "20")),
            outbox_size=int(os.getenv("CHRONOSCRIBE_OUTBOX_SIZE", "1000"))
        )

        self.client = ClientConfig(
            max_attempts=int(os.getenv("CHRONOSCRIBE_MAX_RECONNECTS", "10")),
            base_delay=int(os.getenv("CHRONOSCRIBE_RECONNECT_DELAY_MS", "1000")) / 1000
        )

    def default_server_url(self) -> str:
        """Get the WebSocket URL a local source client connects to by default."""
        return f"ws://localhost:{self.server.port}"


# Global configuration instance
config = Config()
