"""Pyth Hermes WebSocket client for live price ticks."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from app.core.feeds import DEFAULT_HERMES_WS_URL, SOL_USD_FEED_ID

from .clock import now_ms
from .engine import SettlementEngine
from .interface import TickSource

logger = logging.getLogger(__name__)


def _normalize_feed_id(feed_id: str) -> str:
    feed_id = feed_id.strip().lower()
    return feed_id[2:] if feed_id.startswith("0x") else feed_id


def parse_price_update(raw: str | bytes, feed_id: str | None = None) -> float | None:
    """Extract the normalized price from a Hermes ``price_update`` frame.

    Hermes sends fixed-point prices as a mantissa string plus a base-10
    exponent: ``price = int(mantissa) * 10 ** expo``. Returns None for
    other message types (subscription acks), frames for a different feed and
    anything malformed or non-positive.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Dropping unparseable Pyth frame: %s", e)
        return None

    if not isinstance(data, dict) or data.get("type") != "price_update":
        return None

    try:
        feed = data["price_feed"]
        if feed_id is not None and "id" in feed:
            if _normalize_feed_id(str(feed["id"])) != _normalize_feed_id(feed_id):
                return None
        mantissa = int(feed["price"]["price"])
        expo = int(feed["price"]["expo"])
        price = mantissa * 10.0**expo
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        logger.warning("Dropping malformed Pyth price_update: %r", e)
        return None

    if price <= 0:
        logger.warning("Dropping non-positive Pyth price: %s (mantissa=%d, expo=%d)", price, mantissa, expo)
        return None
    return price


class ExponentialBackoff:
    """Doubling reconnect delay, capped."""

    def __init__(self, min_seconds: float = 3.0, max_seconds: float = 30.0) -> None:
        self.min_seconds = min_seconds
        self.max_seconds = max(min_seconds, max_seconds)
        self._current = min_seconds

    def reset(self) -> None:
        self._current = self.min_seconds

    def next(self) -> float:
        """Get next backoff duration and increase for next time."""
        current = self._current
        self._current = min(self._current * 2, self.max_seconds)
        return current


class PythTickSource(TickSource):
    """TickSource backed by the Pyth Hermes price streaming WebSocket.

    Subscribes to a single price feed and forwards every update to the
    engine, stamped with local receipt time so ticks line up with the local
    epoch grid. Reconnects forever with exponential backoff; epochs keep
    settling on the last observed price while it is down.
    """

    def __init__(
        self,
        engine: SettlementEngine,
        ws_url: str = DEFAULT_HERMES_WS_URL,
        feed_id: str = SOL_USD_FEED_ID,
        reconnect_delay: float = 3.0,
        reconnect_max_delay: float = 30.0,
        connect_timeout: float = 10.0,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._engine = engine
        self._url = ws_url
        self._feed_id = feed_id
        self._connect_timeout = connect_timeout
        self._connect = connect
        self._backoff = ExponentialBackoff(reconnect_delay, reconnect_max_delay)
        self._connected = False
        self._running = False
        self._task: asyncio.Task | None = None
        self.reconnect_count = 0

    @property
    def connected(self) -> bool:
        return self._connected

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="pyth-feed")
        logger.info("Pyth feed started: %s feed=%s", self._url, self._feed_id)

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._set_connected(False)
        logger.info("Pyth feed stopped")

    # --- Internal ---

    async def _run_loop(self) -> None:
        """Connect, subscribe, forward ticks; reconnect after any failure."""
        while self._running:
            try:
                async with self._connect(
                    self._url,
                    open_timeout=self._connect_timeout,
                    ping_interval=20,
                    ping_timeout=20,
                    max_size=2**20,
                ) as ws:
                    await ws.send(json.dumps({"type": "subscribe", "ids": [self._feed_id]}))
                    self._set_connected(True)
                    self._backoff.reset()
                    async for message in ws:
                        self._handle_message(message)
                logger.warning("Pyth connection closed by server")
            except ConnectionClosed as e:
                logger.warning("Pyth connection closed: %s", e)
            except Exception as e:
                # Network errors, handshake failures, open timeouts
                logger.warning("Pyth connection error: %s", e)
            finally:
                self._set_connected(False)

            if not self._running:
                break
            self.reconnect_count += 1
            delay = self._backoff.next()
            logger.info("Reconnecting to Pyth in %.1fs (attempt %d)", delay, self.reconnect_count)
            await asyncio.sleep(delay)

    def _handle_message(self, message: str | bytes) -> None:
        price = parse_price_update(message, self._feed_id)
        if price is not None:
            self._engine.on_tick(price, observed_at=now_ms())

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        self._engine.set_upstream_connected(connected)
