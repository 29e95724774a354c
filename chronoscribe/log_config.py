"""
Logging setup for Chronoscribe.
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure root logging once for the process.

    Logs go to stderr so they never mix with piped stdout.

    Args:
        level: Root log level
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True
    )
    # The websockets client logs every frame at DEBUG.
    logging.getLogger("websockets").setLevel(max(level, logging.INFO))


def level_from_name(name: str) -> int:
    """Map a configured level name such as "info" onto a logging level."""
    return getattr(logging, name.upper(), logging.INFO)
