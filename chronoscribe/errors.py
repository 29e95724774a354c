"""
Exception types for Chronoscribe.
"""


class ChronoscribeError(Exception):
    """Base class for Chronoscribe errors."""
    pass


class InvalidPayload(ChronoscribeError):
    """Raised when a known message carries a payload of the wrong shape."""

    def __init__(self, message_type: str, detail: str):
        super().__init__(f"Invalid {message_type} payload: {detail}")
        self.message_type = message_type
        self.detail = detail


class ConnectFailed(ChronoscribeError):
    """Raised when the source client cannot complete its first connection."""
    pass


class ReconnectExhausted(ChronoscribeError):
    """Raised when the source client gives up after too many reconnect attempts."""

    def __init__(self, attempts: int):
        super().__init__(f"Gave up after {attempts} reconnection attempts")
        self.attempts = attempts
