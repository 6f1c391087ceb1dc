"""Fan-out of relay events to connected subscribers."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Awaitable, Callable

from .clock import now_ms
from .messages import heartbeat_message

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[None]]

_subscriber_ids = itertools.count(1)


class Subscriber:
    """One connected client: a bounded outbound queue and its send loop.

    Owns no game state. Messages are queued already serialized so a
    broadcast encodes each event once, however many subscribers there are.
    """

    def __init__(self, queue_size: int = 256, send_timeout: float = 5.0, label: str | None = None) -> None:
        self.id = next(_subscriber_ids)
        self.label = label or f"subscriber-{self.id}"
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._send_timeout = send_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, message: str) -> bool:
        """Queue a message without waiting. False if closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Stop delivery. Pending messages are discarded. Idempotent."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)  # Wake the pump

    async def pump(self, send: Sender) -> None:
        """Deliver queued messages until closed or a send fails.

        A send that raises or takes longer than ``send_timeout`` closes this
        subscriber only.
        """
        while True:
            message = await self._queue.get()
            if message is None:
                break
            try:
                await asyncio.wait_for(send(message), timeout=self._send_timeout)
            except asyncio.TimeoutError:
                logger.warning("%s: send timed out after %.1fs, disconnecting", self.label, self._send_timeout)
                self.close()
                break
            except Exception as e:
                logger.warning("%s: send failed (%s), disconnecting", self.label, e)
                self.close()
                break

    def __repr__(self) -> str:
        return f"Subscriber({self.label!r}, pending={self.pending}, closed={self._closed})"


class BroadcastHub:
    """Registry of live subscribers with non-blocking broadcast.

    ``broadcast`` never awaits: it drops each event into every subscriber's
    queue and returns. A subscriber whose queue is full or that has closed is
    removed, so one stalled connection never holds up the rest.
    """

    def __init__(
        self,
        queue_size: int = 256,
        send_timeout: float = 5.0,
        heartbeat_interval: float = 30.0,
        time_source: Callable[[], int] = now_ms,
    ) -> None:
        self._queue_size = queue_size
        self._send_timeout = send_timeout
        self._heartbeat_interval = heartbeat_interval
        self._now = time_source
        self._subscribers: set[Subscriber] = set()
        self._task: asyncio.Task | None = None

    def subscribe(self, initial: dict | None = None, label: str | None = None) -> Subscriber:
        """Register a new subscriber. ``initial`` is queued ahead of any broadcast."""
        subscriber = Subscriber(queue_size=self._queue_size, send_timeout=self._send_timeout, label=label)
        if initial is not None:
            subscriber.offer(json.dumps(initial))
        self._subscribers.add(subscriber)
        logger.info("%s joined (total: %d)", subscriber.label, len(self._subscribers))
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove and close a subscriber. No-op if already gone."""
        subscriber.close()
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info("%s left (total: %d)", subscriber.label, len(self._subscribers))

    def broadcast(self, event: dict) -> int:
        """Queue ``event`` for every subscriber. Returns how many accepted it."""
        if not self._subscribers:
            return 0
        message = json.dumps(event)
        delivered = 0
        for subscriber in list(self._subscribers):
            if subscriber.offer(message):
                delivered += 1
                continue
            if not subscriber.closed:
                logger.warning("%s: send queue full, disconnecting", subscriber.label)
            self._subscribers.discard(subscriber)
            subscriber.close()
        return delivered

    async def start(self) -> None:
        """Start the heartbeat task."""
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._heartbeat_loop(), name="relay-heartbeat")
        logger.info("Broadcast hub started, heartbeat every %.1fs", self._heartbeat_interval)

    async def stop(self) -> None:
        """Stop the heartbeat and close every subscriber. Safe to call twice."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        for subscriber in list(self._subscribers):
            subscriber.close()
        self._subscribers.clear()
        logger.info("Broadcast hub stopped")

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return subscriber in self._subscribers

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                self.broadcast(heartbeat_message(self._now(), len(self._subscribers)))
            except Exception:
                logger.exception("Heartbeat broadcast failed")
