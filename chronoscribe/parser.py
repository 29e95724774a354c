"""
Log line parser for Chronoscribe.

Detects the severity level and an embedded timestamp in a raw log line using
patterns common to many frameworks. Parsing never fails; a line with nothing
recognizable comes back as INFO.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from .models import LogLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedLog:
    """Result of parsing a log line."""

    level: LogLevel
    content: str
    original_timestamp: Optional[str] = None


# Most specific first; INFO is checked last as it is the default anyway.
LEVEL_PATTERNS: List[Tuple[Pattern, LogLevel]] = [
    (re.compile(r'\b(ERROR|ERR|FATAL|CRITICAL|CRIT)\b', re.IGNORECASE), LogLevel.ERROR),
    (re.compile(r'\[error\]', re.IGNORECASE), LogLevel.ERROR),
    (re.compile('❌|\U0001f534|\U0001f4a5'), LogLevel.ERROR),

    (re.compile(r'\b(WARN|WARNING|WRN)\b', re.IGNORECASE), LogLevel.WARN),
    (re.compile(r'\[warn(ing)?\]', re.IGNORECASE), LogLevel.WARN),
    (re.compile('⚠|\U0001f7e1|\U0001f7e0'), LogLevel.WARN),

    (re.compile(r'\b(DEBUG|DBG|TRACE|VERBOSE)\b', re.IGNORECASE), LogLevel.DEBUG),
    (re.compile(r'\[debug\]', re.IGNORECASE), LogLevel.DEBUG),
    (re.compile('\U0001f50d|\U0001f41b'), LogLevel.DEBUG),

    (re.compile(r'\b(INFO|INF|LOG)\b', re.IGNORECASE), LogLevel.INFO),
    (re.compile(r'\[info\]', re.IGNORECASE), LogLevel.INFO),
    (re.compile('ℹ|\U0001f7e2|✅'), LogLevel.INFO),
]

TIMESTAMP_PATTERNS: List[Pattern] = [
    # ISO 8601: 2023-12-15T14:30:00.000Z
    re.compile(r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{3})?Z?'),
    # Common format: 2023-12-15 14:30:00
    re.compile(r'\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}'),
    # date command format: Sun Dec 15 14:30:00
    re.compile(r'[A-Z][a-z]{2}\s+[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}'),
    # Time only: 14:30:00 or 14:30:00.123
    re.compile(r'\d{2}:\d{2}:\d{2}(?:\.\d{3})?'),
]

_LEVEL_WORDS = {
    LogLevel.ERROR: {'ERROR', 'ERR', 'FATAL', 'CRITICAL'},
    LogLevel.WARN: {'WARN', 'WARNING', 'WRN'},
    LogLevel.DEBUG: {'DEBUG', 'DBG', 'TRACE', 'VERBOSE'},
    LogLevel.INFO: {'INFO', 'INF', 'LOG'},
}


def normalize_level_word(word: str) -> LogLevel:
    """Map a level word captured by a custom pattern onto a LogLevel."""
    upper = word.upper()
    for level, words in _LEVEL_WORDS.items():
        if upper in words:
            return level
    return LogLevel.INFO


def _detect_level(line: str, custom_pattern: Optional[str]) -> LogLevel:
    if custom_pattern:
        # A custom pattern replaces the built-in ones entirely.
        try:
            match = re.search(custom_pattern, line)
        except re.error as e:
            logger.debug(f"Ignoring invalid level pattern {custom_pattern!r}: {e}")
            return LogLevel.INFO
        if match and match.groupdict().get('level'):
            return normalize_level_word(match.group('level'))
        return LogLevel.INFO

    for pattern, level in LEVEL_PATTERNS:
        if pattern.search(line):
            return level
    return LogLevel.INFO


def _detect_timestamp(line: str) -> Optional[str]:
    for pattern in TIMESTAMP_PATTERNS:
        match = pattern.search(line)
        if match:
            return match.group(0)
    return None


def parse_log_line(line: str, custom_pattern: Optional[str] = None) -> ParsedLog:
    """
    Parse a log line to extract level, content, and timestamp.

    Args:
        line: The raw line as read from stdin
        custom_pattern: Optional regex with a named group ``level``

    Returns:
        ParsedLog: Best-effort parse result
    """
    return ParsedLog(
        level=_detect_level(line, custom_pattern),
        content=line.strip(),
        original_timestamp=_detect_timestamp(line)
    )
