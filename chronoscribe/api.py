"""
FastAPI application for the Chronoscribe relay.

Exposes the WebSocket endpoint shared by sources and viewers, plus small JSON
endpoints for health checks and statistics.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.responses import JSONResponse

from . import __version__
from .models import HealthResponse, StatsResponse, now_iso
from .relay import RelayCore
from .session import RelaySession

logger = logging.getLogger(__name__)


def create_app(relay: Optional[RelayCore] = None) -> FastAPI:
    """
    Create and configure the relay application.

    Args:
        relay: Relay core to serve (a fresh one is created otherwise)

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Chronoscribe Relay",
        description="Real-time log relay between CLI sources and dashboard viewers",
        version=__version__
    )
    app.state.relay = relay or RelayCore()

    _add_routes(app)

    return app


def _add_routes(app: FastAPI) -> None:
    """Add all routes to the FastAPI application."""

    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for sources and viewers."""
        await websocket.accept()
        await RelaySession(app.state.relay, websocket).run()

    app.add_api_websocket_route("/", websocket_endpoint)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        stats = app.state.relay.registry.stats()
        return HealthResponse(
            status="healthy",
            service="chronoscribe",
            version=__version__,
            timestamp=now_iso(),
            sources=stats['sources'],
            viewers=stats['viewers']
        )

    @app.get("/stats")
    async def get_stats():
        """Get connection and replay buffer statistics."""
        try:
            stats = StatsResponse(**app.state.relay.stats())
            return JSONResponse(content=stats.to_wire())
        except Exception as e:
            logger.error(f"Error getting relay stats: {e}")
            raise HTTPException(status_code=500, detail="Failed to get relay stats")
