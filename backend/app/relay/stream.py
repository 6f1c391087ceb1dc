"""WebSocket and health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket

from .engine import SettlementEngine
from .hub import BroadcastHub
from .sessions import SessionManager


def create_stream_router(
    engine: SettlementEngine,
    hub: BroadcastHub,
    sessions: SessionManager,
) -> APIRouter:
    """Create the relay router with references to the engine, hub and sessions.

    This factory pattern lets us inject them without globals.
    """
    router = APIRouter(tags=["relay"])

    @router.get("/")
    @router.get("/health")
    async def health() -> dict:
        """Liveness and introspection. Read-only."""
        return {"status": "ok", **engine.health(), "clients": len(hub)}

    @router.websocket("/")
    @router.websocket("/ws")
    async def stream(websocket: WebSocket) -> None:
        """Live relay stream.

        The first frame is an ``init`` snapshot; after that the client
        receives every ``price``, ``time``, ``epoch_end``, ``epoch_start``,
        ``heartbeat`` and ``status`` event as a JSON text frame.
        """
        await sessions.serve(websocket)

    return router
