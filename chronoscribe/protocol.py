"""
WebSocket message protocol for Chronoscribe.

Every frame is a JSON object ``{"type": ..., "payload": ...}``. Decoding only
checks the envelope; payload shapes are validated by whoever consumes the
message, through :func:`parse_payload`.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import InvalidPayload
from .models import ConnectionRole, LogRecord, Source, WireModel, now_iso


class MessageType(str, Enum):
    """Message type tags used on the wire."""

    # Client -> relay
    SOURCE_REGISTER = "SOURCE_REGISTER"
    LOG = "LOG"
    HEARTBEAT = "HEARTBEAT"

    # Relay -> client
    WELCOME = "WELCOME"
    LOG_BROADCAST = "LOG_BROADCAST"
    SOURCE_CONNECTED = "SOURCE_CONNECTED"
    SOURCE_DISCONNECTED = "SOURCE_DISCONNECTED"
    SOURCES_LIST = "SOURCES_LIST"
    LOGS_BATCH = "LOGS_BATCH"
    ERROR = "ERROR"


# ============================================================================
# Payloads
# ============================================================================

class RegisterSourcePayload(WireModel):
    name: str
    color: Optional[str] = None


class LogLinePayload(WireModel):
    content: str
    raw: str
    level: str
    original_timestamp: Optional[str] = None


class HeartbeatPayload(WireModel):
    timestamp: str


class WelcomePayload(WireModel):
    version: str
    client_id: str
    role: ConnectionRole
    color: Optional[str] = None


class LogBroadcastPayload(WireModel):
    record: LogRecord


class SourceConnectedPayload(WireModel):
    source: Source


class SourceDisconnectedPayload(WireModel):
    source_id: str
    source_name: str


class SourcesListPayload(WireModel):
    sources: List[Source]


class LogsBatchPayload(WireModel):
    records: List[LogRecord]


class ErrorPayload(WireModel):
    code: str
    message: str


PAYLOAD_MODELS: Dict[MessageType, Type[WireModel]] = {
    MessageType.SOURCE_REGISTER: RegisterSourcePayload,
    MessageType.LOG: LogLinePayload,
    MessageType.HEARTBEAT: HeartbeatPayload,
    MessageType.WELCOME: WelcomePayload,
    MessageType.LOG_BROADCAST: LogBroadcastPayload,
    MessageType.SOURCE_CONNECTED: SourceConnectedPayload,
    MessageType.SOURCE_DISCONNECTED: SourceDisconnectedPayload,
    MessageType.SOURCES_LIST: SourcesListPayload,
    MessageType.LOGS_BATCH: LogsBatchPayload,
    MessageType.ERROR: ErrorPayload,
}


# ============================================================================
# Envelope and codec
# ============================================================================

class Envelope(BaseModel):
    """A decoded frame. ``type`` may be a tag this relay does not know."""

    model_config = ConfigDict(frozen=True)

    type: str
    payload: Any

    @property
    def message_type(self) -> Optional[MessageType]:
        """The known message type, or None for an unrecognized tag."""
        try:
            return MessageType(self.type)
        except ValueError:
            return None


@dataclass(frozen=True)
class Malformed:
    """Result of decoding a frame that is not a valid envelope."""

    reason: str


def encode(message: Envelope) -> str:
    """Serialize an envelope for sending over a WebSocket."""
    return json.dumps({"type": message.type, "payload": message.payload})


def decode(data: Union[str, bytes]) -> Union[Envelope, Malformed]:
    """
    Parse a frame received from a WebSocket.

    Never raises: anything that is not a JSON object carrying both ``type``
    and ``payload`` comes back as :class:`Malformed`.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            return Malformed(f"frame is not valid UTF-8: {e}")

    try:
        parsed = json.loads(data)
    except (ValueError, RecursionError) as e:
        return Malformed(f"frame is not valid JSON: {e}")

    if not isinstance(parsed, dict):
        return Malformed("frame is not a JSON object")
    if "type" not in parsed:
        return Malformed("frame has no type")
    if "payload" not in parsed:
        return Malformed("frame has no payload")
    if not isinstance(parsed["type"], str):
        return Malformed("frame type is not a string")

    return Envelope(type=parsed["type"], payload=parsed["payload"])


def parse_payload(message: Envelope) -> WireModel:
    """
    Validate the payload of a known message and return its typed model.

    Raises:
        InvalidPayload: If the type is unknown or the payload does not fit it
    """
    message_type = message.message_type
    if message_type is None:
        raise InvalidPayload(message.type, "unknown message type")

    model = PAYLOAD_MODELS[message_type]
    try:
        return model.model_validate(message.payload)
    except ValidationError as e:
        raise InvalidPayload(message.type, str(e)) from e


# ============================================================================
# Helpers
# ============================================================================

def make_message(message_type: MessageType, payload: WireModel) -> Envelope:
    """Wrap a payload model into an envelope."""
    return Envelope(type=message_type.value, payload=payload.to_wire())


def register_message(name: str, color: Optional[str] = None) -> Envelope:
    """Create a source registration message."""
    return make_message(MessageType.SOURCE_REGISTER, RegisterSourcePayload(name=name, color=color))


def log_message(content: str, raw: str, level: str, original_timestamp: Optional[str] = None) -> Envelope:
    """Create a log message for sending from the CLI."""
    return make_message(
        MessageType.LOG,
        LogLinePayload(content=content, raw=raw, level=level, original_timestamp=original_timestamp)
    )


def heartbeat_message() -> Envelope:
    """Create a heartbeat message stamped with the current time."""
    return make_message(MessageType.HEARTBEAT, HeartbeatPayload(timestamp=now_iso()))


def error_message(code: str, message: str) -> Envelope:
    """Create an informational error message."""
    return make_message(MessageType.ERROR, ErrorPayload(code=code, message=message))
