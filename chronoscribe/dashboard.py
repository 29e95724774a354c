"""
Dashboard application for Chronoscribe.

Serves the viewer UI on its own port, separate from the relay. Either the
built-in viewer page or a pre-built web bundle directory is served.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .ui import get_viewer_html

logger = logging.getLogger(__name__)


def create_dashboard_app(ws_port: Optional[int] = None,
                         static_dir: Optional[Union[str, Path]] = None) -> FastAPI:
    """
    Create the dashboard application.

    Args:
        ws_port: Relay port the built-in viewer connects to
        static_dir: Directory holding a pre-built dashboard bundle

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Chronoscribe Dashboard",
        description="Live viewer for the Chronoscribe relay",
        version=__version__
    )

    if static_dir is not None:
        static_path = Path(static_dir)
        if not static_path.is_dir():
            raise FileNotFoundError(f"Dashboard directory not found: {static_path}")
        logger.info(f"Serving dashboard bundle from {static_path}")
        app.mount("/", StaticFiles(directory=static_path, html=True), name="dashboard")
        return app

    @app.get("/", response_class=HTMLResponse)
    async def get_viewer():
        """Serve the built-in viewer page."""
        return HTMLResponse(content=get_viewer_html(ws_port))

    return app
