"""
Color utilities for terminal output.
"""

import re
import sys

_HEX_COLOR = re.compile(r'^#?([0-9a-fA-F]{6})$')


class Colors:
    """ANSI color codes for CLI banners and status lines."""

    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[0;33m'
    BLUE = '\033[0;34m'
    CYAN = '\033[0;36m'
    BOLD_WHITE = '\033[1;37m'
    DIM = '\033[2m'

    RESET = '\033[0m'

    @staticmethod
    def enabled() -> bool:
        """Colors are only emitted when stderr is a terminal."""
        return sys.stderr.isatty()

    @staticmethod
    def colorize(text: str, color: str) -> str:
        """Apply color to text."""
        if not Colors.enabled():
            return text
        return f"{color}{text}{Colors.RESET}"

    @staticmethod
    def hex(text: str, hex_color: str) -> str:
        """Color text with a CSS hex color such as a source badge color."""
        match = _HEX_COLOR.match(hex_color or '')
        if not match:
            return text
        value = match.group(1)
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
        return Colors.colorize(text, f'\033[38;2;{r};{g};{b}m')

    @staticmethod
    def success(text: str) -> str:
        return Colors.colorize(text, Colors.GREEN)

    @staticmethod
    def error(text: str) -> str:
        return Colors.colorize(text, Colors.RED)

    @staticmethod
    def warning(text: str) -> str:
        return Colors.colorize(text, Colors.YELLOW)

    @staticmethod
    def info(text: str) -> str:
        return Colors.colorize(text, Colors.CYAN)

    @staticmethod
    def bold(text: str) -> str:
        return Colors.colorize(text, Colors.BOLD_WHITE)
