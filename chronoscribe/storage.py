"""
Replay buffer for Chronoscribe.

Holds the most recent log records in arrival order so that a viewer joining
late can be sent a backlog before live broadcasts start.
"""

import logging
import threading
from collections import deque
from typing import Dict, List

from .models import LogRecord
from .config import config

logger = logging.getLogger(__name__)


class ReplayBuffer:
    """Bounded FIFO store of log records with thread-safe operations."""

    def __init__(self, capacity: int = None):
        """
        Initialize the buffer.

        Args:
            capacity: Maximum number of records kept (defaults to the configured size)
        """
        if capacity is None:
            capacity = config.relay.buffer_size
        if capacity < 1:
            raise ValueError(f"Replay buffer capacity must be positive, got {capacity}")
        self._records: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: LogRecord) -> None:
        """
        Append a record, evicting the oldest one when the buffer is full.

        Args:
            record: The record to store
        """
        with self._lock:
            self._records.append(record)

    def snapshot(self) -> List[LogRecord]:
        """
        Get a copy of every buffered record, oldest first.

        Later appends never change a list returned here.

        Returns:
            List[LogRecord]: The buffered records in arrival order
        """
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        """Drop every buffered record."""
        with self._lock:
            self._records.clear()
        logger.info("Cleared replay buffer")

    def stats(self) -> Dict[str, int]:
        """
        Get information about the buffer state.

        Returns:
            Dict containing the buffered record count and the capacity
        """
        with self._lock:
            return {
                'buffered_logs': len(self._records),
                'max_buffer_size': self._records.maxlen
            }
