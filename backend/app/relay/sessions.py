"""Per-connection lifecycle for WebSocket subscribers."""

from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket
from starlette import status
from starlette.websockets import WebSocketState

from .engine import SettlementEngine
from .hub import BroadcastHub

logger = logging.getLogger(__name__)


class SessionManager:
    """Joins WebSocket clients to the broadcast hub.

    A session is: accept, send one ``init`` snapshot, stream broadcasts until
    either side goes away, unsubscribe. Sessions never touch engine state
    beyond reading the snapshot.
    """

    def __init__(self, engine: SettlementEngine, hub: BroadcastHub) -> None:
        self._engine = engine
        self._hub = hub

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        client = websocket.client
        label = f"{client.host}:{client.port}" if client else "unknown"

        # No await between snapshot and subscribe, so no event can be
        # published in between: the snapshot is followed by exactly the
        # events that happened after it.
        subscriber = self._hub.subscribe(initial=self._engine.snapshot(), label=label)

        sender = asyncio.create_task(subscriber.pump(websocket.send_text), name=f"send-{label}")
        receiver = asyncio.create_task(self._wait_for_disconnect(websocket), name=f"recv-{label}")
        try:
            await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._hub.unsubscribe(subscriber)
            for task in (sender, receiver):
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
            await self._close(websocket, label)

    @staticmethod
    async def _wait_for_disconnect(websocket: WebSocket) -> None:
        """Consume inbound frames until the client disconnects. Clients have nothing to say."""
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    @staticmethod
    async def _close(websocket: WebSocket, label: str) -> None:
        if (
            websocket.client_state != WebSocketState.CONNECTED
            or websocket.application_state != WebSocketState.CONNECTED
        ):
            return
        try:
            # We only close first when delivery to this client failed
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        except RuntimeError as e:
            logger.debug("%s: close after disconnect: %s", label, e)
