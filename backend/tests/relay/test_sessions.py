"""Tests for SessionManager."""

import asyncio

import pytest

from app.relay.sessions import SessionManager


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
class TestSessionManager:
    """Subscriber join / stream / teardown."""

    async def test_join_sends_snapshot_first(self, hub_engine, hub, make_websocket):
        """Test the first frame is the init snapshot."""
        hub_engine.on_tick(20.0, observed_at=100)
        sessions = SessionManager(hub_engine, hub)
        ws = make_websocket()

        task = asyncio.create_task(sessions.serve(ws))
        await _wait_until(lambda: len(ws.sent) >= 1)

        first = ws.messages()[0]
        assert first["type"] == "init"
        assert first["currentPrice"] == 20.0
        assert len(hub) == 1

        ws.disconnect()
        await asyncio.wait_for(task, timeout=1.0)

    async def test_streams_events_after_snapshot(self, hub_engine, hub, make_websocket):
        """Test broadcasts after join follow the snapshot in order."""
        sessions = SessionManager(hub_engine, hub)
        ws = make_websocket()

        task = asyncio.create_task(sessions.serve(ws))
        await _wait_until(lambda: len(hub) == 1)
        hub_engine.on_tick(20.0, observed_at=100)
        hub_engine.check_rollover(10_000)
        await _wait_until(lambda: len(ws.sent) >= 4)

        assert [m["type"] for m in ws.messages()] == ["init", "price", "epoch_end", "epoch_start"]
        ws.disconnect()
        await asyncio.wait_for(task, timeout=1.0)

    async def test_disconnect_removes_subscriber_only(self, hub_engine, hub, make_websocket):
        """Test teardown unsubscribes without touching engine state."""
        hub_engine.on_tick(20.0, observed_at=100)
        sessions = SessionManager(hub_engine, hub)
        before = hub_engine.state
        ws = make_websocket()

        task = asyncio.create_task(sessions.serve(ws))
        await _wait_until(lambda: len(hub) == 1)
        ws.disconnect()
        await asyncio.wait_for(task, timeout=1.0)

        assert len(hub) == 0
        assert hub_engine.state == before
        assert ws.close_code is None  # Client left first, nothing to close

    async def test_failed_delivery_closes_socket(self, hub_engine, hub, make_websocket):
        """Test a subscriber whose sends fail is dropped and its socket closed."""
        sessions = SessionManager(hub_engine, hub)
        ws = make_websocket(fail_send=True)

        await asyncio.wait_for(sessions.serve(ws), timeout=1.0)

        assert len(hub) == 0
        assert ws.close_code == 1013

    async def test_one_broken_session_does_not_affect_another(self, hub_engine, hub, make_websocket):
        """Test a broken client is isolated from a healthy one."""
        sessions = SessionManager(hub_engine, hub)
        broken, healthy = make_websocket(fail_send=True), make_websocket()

        broken_task = asyncio.create_task(sessions.serve(broken))
        healthy_task = asyncio.create_task(sessions.serve(healthy))
        await asyncio.wait_for(broken_task, timeout=1.0)
        await _wait_until(lambda: len(healthy.sent) >= 1)
        hub_engine.on_tick(20.0, observed_at=100)
        await _wait_until(lambda: len(healthy.sent) >= 2)

        assert [m["type"] for m in healthy.messages()] == ["init", "price"]
        assert len(hub) == 1
        healthy.disconnect()
        await asyncio.wait_for(healthy_task, timeout=1.0)
