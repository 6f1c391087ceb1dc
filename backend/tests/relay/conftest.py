"""Fixtures for relay tests."""

import asyncio
import json

import pytest

from app.relay.clock import EpochClock
from app.relay.engine import SettlementEngine
from app.relay.hub import BroadcastHub


class RecordingPublisher:
    """Collects published events in order."""

    def __init__(self):
        self.events: list[dict] = []

    def __call__(self, event: dict) -> None:
        self.events.append(event)

    def of_type(self, kind: str) -> list[dict]:
        return [e for e in self.events if e["type"] == kind]

    @property
    def types(self) -> list[str]:
        return [e["type"] for e in self.events]


class FakeClient:
    host = "127.0.0.1"
    port = 50000


class FakeWebSocket:
    """Minimal stand-in for a FastAPI WebSocket driven from the test."""

    def __init__(self, send_delay: float = 0.0, fail_send: bool = False):
        from starlette.websockets import WebSocketState

        self.client = FakeClient()
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.send_delay = send_delay
        self.fail_send = fail_send
        self._inbound: asyncio.Queue[dict] = asyncio.Queue()

    async def accept(self) -> None:
        from starlette.websockets import WebSocketState

        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionResetError("peer gone")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append(data)

    async def receive(self) -> dict:
        return await self._inbound.get()

    async def close(self, code: int = 1000) -> None:
        from starlette.websockets import WebSocketState

        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def disconnect(self) -> None:
        """Simulate the client going away."""
        from starlette.websockets import WebSocketState

        self.client_state = WebSocketState.DISCONNECTED
        self._inbound.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]


@pytest.fixture
def clock():
    return EpochClock(10_000)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def engine(clock, publisher):
    """Engine starting in epoch 0 with a frozen time source."""
    return SettlementEngine(clock, publisher, start_epoch=0, time_source=lambda: 0)


@pytest.fixture
def hub():
    return BroadcastHub()


@pytest.fixture
def hub_engine(clock, hub):
    """Engine publishing into a real hub, starting in epoch 0."""
    return SettlementEngine(clock, hub.broadcast, start_epoch=0, time_source=lambda: 0)


@pytest.fixture
def make_websocket():
    return FakeWebSocket
