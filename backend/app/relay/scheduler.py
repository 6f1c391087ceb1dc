"""Fixed-interval rollover checks and countdown broadcasts."""

from __future__ import annotations

import asyncio
import logging

from .engine import SettlementEngine
from .hub import BroadcastHub

logger = logging.getLogger(__name__)


class EpochScheduler:
    """Drives the engine's rollover checks independently of tick arrival.

    One background task wakes every ``poll_interval`` seconds, settles any
    closed epoch and, every ``time_interval`` seconds, broadcasts a ``time``
    countdown. A late wake-up only delays settlement; it is computed from
    whatever ticks had arrived by then.
    """

    def __init__(
        self,
        engine: SettlementEngine,
        hub: BroadcastHub,
        poll_interval: float = 0.05,
        time_interval: float = 0.1,
    ) -> None:
        self._engine = engine
        self._hub = hub
        self._poll_interval = poll_interval
        self._time_interval = time_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="epoch-scheduler")
        logger.info(
            "Epoch scheduler started: poll %.3fs, countdown %.3fs",
            self._poll_interval,
            self._time_interval,
        )

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Epoch scheduler stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_countdown = loop.time()
        while True:
            try:
                self._engine.check_rollover()
                if loop.time() >= next_countdown:
                    self._hub.broadcast(self._engine.time_event())
                    next_countdown = loop.time() + self._time_interval
            except Exception:
                logger.exception("Rollover check failed")
            await asyncio.sleep(self._poll_interval)
