"""
Server runner for Chronoscribe.

Runs the relay and the dashboard as two uvicorn servers on one event loop.
Transport-level ping/pong, which decides when an idle connection is dead, is
delegated to uvicorn's WebSocket implementation.
"""

import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import Optional, Union

import uvicorn

from . import __version__
from .api import create_app
from .colors import Colors
from .config import Config, config as default_config
from .dashboard import create_dashboard_app
from .relay import RelayCore

logger = logging.getLogger(__name__)


def _banner(ws_port: int, http_port: Optional[int]) -> str:
    lines = [
        Colors.bold(f"Chronoscribe Server v{__version__}"),
        f"  WebSocket relay:  {Colors.info(f'ws://localhost:{ws_port}')}",
    ]
    if http_port is not None:
        lines.append(f"  Dashboard:        {Colors.info(f'http://localhost:{http_port}')}")
    lines.append("  Waiting for connections...")
    return "\n".join(lines)


def build_servers(cfg: Config, ws_port: int, http_port: Optional[int],
                  dashboard_dir: Optional[Union[str, Path]] = None):
    """
    Build the uvicorn servers for the relay and, optionally, the dashboard.

    Returns:
        tuple: (relay core, list of uvicorn.Server)
    """
    relay = RelayCore(cfg.relay)
    servers = [
        uvicorn.Server(uvicorn.Config(
            create_app(relay),
            host=cfg.server.host,
            port=ws_port,
            log_level=cfg.server.log_level,
            access_log=cfg.server.access_log,
            ws_ping_interval=cfg.relay.ping_interval,
            ws_ping_timeout=cfg.relay.ping_timeout
        ))
    ]
    if http_port is not None:
        servers.append(uvicorn.Server(uvicorn.Config(
            create_dashboard_app(ws_port=ws_port, static_dir=dashboard_dir),
            host=cfg.server.host,
            port=http_port,
            log_level=cfg.server.log_level,
            access_log=cfg.server.access_log
        )))
    return relay, servers


async def serve(ws_port: Optional[int] = None, http_port: Optional[int] = None,
                dashboard: bool = True, dashboard_dir: Optional[Union[str, Path]] = None,
                open_browser: bool = False, cfg: Optional[Config] = None) -> None:
    """
    Run the relay (and dashboard) until interrupted.

    Args:
        ws_port: Relay port (defaults to the configured port)
        http_port: Dashboard port (defaults to the configured port)
        dashboard: Whether to serve the dashboard at all
        dashboard_dir: Optional pre-built dashboard bundle to serve
        open_browser: Open the dashboard in the default browser once started
        cfg: Configuration (defaults to the environment-derived config)
    """
    cfg = cfg or default_config
    ws_port = ws_port or cfg.server.port
    http_port = (http_port or cfg.server.http_port) if dashboard else None

    _, servers = build_servers(cfg, ws_port, http_port, dashboard_dir)
    print(_banner(ws_port, http_port))

    if open_browser and http_port is not None:
        asyncio.get_running_loop().call_later(1.0, webbrowser.open, f"http://localhost:{http_port}")

    tasks = [asyncio.create_task(server.serve()) for server in servers]
    try:
        # Each uvicorn server installs its own signal handlers, so the last one
        # started may be the only one told to stop; stop the rest with it.
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for server in servers:
            server.should_exit = True
    await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("Chronoscribe server stopped")
