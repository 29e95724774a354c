"""
Pydantic models for Chronoscribe.

This module defines the data records shared by the relay, the wire protocol
and the CLI client. Field names are snake_case in Python and camelCase on the
wire.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump the model using wire field names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LogLevel(str, Enum):
    """Log severity levels, ordered from most verbose to most critical."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def priority(self) -> int:
        return LOG_LEVEL_PRIORITY[self]


LOG_LEVEL_PRIORITY: Dict[LogLevel, int] = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


class ConnectionRole(str, Enum):
    """Role of a relay connection. UNRESOLVED until registration or the grace window decides."""

    UNRESOLVED = "UNRESOLVED"
    SOURCE = "SOURCE"
    VIEWER = "VIEWER"


class LogRecord(WireModel):
    """A single normalized log line, immutable once created by the relay."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the record (UUID4)")
    received_at: str = Field(..., description="ISO 8601 timestamp assigned by the relay")
    source_name: str = Field(..., description="Name of the source that produced the line")
    level: LogLevel = Field(..., description="Normalized severity level")
    content: str = Field(..., description="Processed content for display")
    raw: str = Field(..., description="Original unprocessed line")
    original_timestamp: Optional[str] = Field(default=None, description="Timestamp found in the line itself")
    timestamp_format: Optional[str] = Field(default=None, description="Format of the original timestamp")


class Source(WireModel):
    """Display identity of one producer connection."""

    id: str = Field(..., description="Connection ID of the source")
    name: str = Field(..., description="Name, unique among registered sources")
    color: str = Field(..., description="CSS color used for the source badge")
    connected_at: str = Field(..., description="ISO 8601 timestamp of registration")
    connected: bool = Field(default=True, description="Whether the source is still connected")


class HealthResponse(WireModel):
    """Model for relay health check responses."""

    status: str = Field(..., description="Health status of the relay")
    service: str = Field(..., description="Name of the service")
    version: str = Field(..., description="Relay version")
    timestamp: str = Field(..., description="ISO format timestamp of the health check")
    sources: int = Field(..., description="Number of connected sources")
    viewers: int = Field(..., description="Number of connected viewers")


class StatsResponse(WireModel):
    """Model for relay statistics responses."""

    sources: int = Field(..., description="Number of connected sources")
    viewers: int = Field(..., description="Number of connected viewers")
    total: int = Field(..., description="Number of resolved connections")
    buffered_logs: int = Field(..., description="Records currently held for replay")
    max_buffer_size: int = Field(..., description="Replay buffer capacity")


def now_iso() -> str:
    """Get the current UTC time in ISO 8601 format with a trailing Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
