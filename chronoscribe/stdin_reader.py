"""
Line reader for piping process output into Chronoscribe.
"""

import asyncio
import inspect
import logging
import sys
import threading
from typing import Awaitable, Callable, Optional, TextIO, Union

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], Union[None, Awaitable[None]]]


def _pump(stream: TextIO, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> None:
    try:
        for line in iter(stream.readline, ''):
            loop.call_soon_threadsafe(queue.put_nowait, line)
    except (OSError, ValueError) as e:
        logger.debug(f"Input read failed: {e}")
    except RuntimeError:
        # The loop went away while input was still arriving.
        pass
    finally:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Event loop already closed; nobody is waiting for the end marker.
            pass


async def for_each_line(on_line: LineCallback,
                        on_close: Optional[Callable[[], None]] = None,
                        stream: Optional[TextIO] = None) -> int:
    """
    Feed every non-blank line of a text stream to a callback.

    Blocking reads happen on a daemon thread, so a reader stuck on an idle
    terminal never keeps the process alive. ``on_close`` fires exactly once
    when the input ends, the read is cancelled, or the callback raises.

    Args:
        on_line: Called with each line, trailing newline removed; may be async
        on_close: Called once when reading stops
        stream: Text stream to read (defaults to stdin)

    Returns:
        int: Number of lines handed to the callback
    """
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    count = 0

    reader = threading.Thread(target=_pump, args=(stream, loop, queue), name="stdin-reader", daemon=True)
    reader.start()

    try:
        while True:
            line = await queue.get()
            if line is None:
                logger.debug(f"Input closed after {count} lines")
                break
            line = line.rstrip('\r\n')
            if not line.strip():
                continue
            result = on_line(line)
            if inspect.isawaitable(result):
                await result
            count += 1
    finally:
        if on_close is not None:
            on_close()

    return count
