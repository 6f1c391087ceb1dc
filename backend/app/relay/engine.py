"""Epoch settlement engine."""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import replace
from threading import Lock
from typing import TypeVar

from .clock import EpochClock, now_ms
from .messages import (
    epoch_end_message,
    epoch_start_message,
    init_message,
    price_message,
    status_message,
    time_message,
)
from .models import EpochResult, EpochState, PricePoint, decide_outcome

logger = logging.getLogger(__name__)

Publisher = Callable[[dict], None]
T = TypeVar("T")


def _tail(items: Sequence[T], n: int) -> list[T]:
    items = list(items)
    return items[-n:] if len(items) > n else items


class SettlementEngine:
    """Single-writer state machine that turns ticks into epoch settlements.

    Writers: the tick source (``on_tick``, ``set_upstream_connected``) and the
    scheduler (``check_rollover``). Readers: session manager (``snapshot``),
    health endpoint, scheduler (``time_event``).

    Every mutation and every read happens inside one lock, and events are
    published while it is held, so subscribers see transitions in the order
    they were applied and a snapshot is always either fully before or fully
    after a settlement. ``publish`` must not block; the broadcast hub only
    enqueues.
    """

    def __init__(
        self,
        clock: EpochClock,
        publish: Publisher | None = None,
        *,
        price_history_size: int = 600,
        epoch_history_size: int = 20,
        boundary_count: int = 10,
        snapshot_price_points: int = 400,
        snapshot_epoch_results: int = 10,
        time_source: Callable[[], int] = now_ms,
        start_epoch: int | None = None,
    ) -> None:
        self._clock = clock
        self._publish = publish
        self._now = time_source
        self._boundary_count = boundary_count
        self._snapshot_price_points = snapshot_price_points
        self._snapshot_epoch_results = snapshot_epoch_results
        self._max_catch_up = epoch_history_size
        self._lock = Lock()

        if start_epoch is None:
            start_epoch = clock.epoch_index(time_source())
        self._state = EpochState(current_epoch=start_epoch)
        self._prices: deque[PricePoint] = deque(maxlen=price_history_size)
        self._results: deque[EpochResult] = deque(maxlen=epoch_history_size)
        self._upstream_connected = False

    # --- Writers ---

    def on_tick(self, price: float, observed_at: int | None = None) -> PricePoint | None:
        """Record a tick in the current epoch. Returns the stored point.

        Non-numeric, non-finite and non-positive prices are dropped and leave
        the state untouched. A tick never closes an epoch by itself, even if
        ``observed_at`` is already past the boundary: it counts toward the
        epoch that is still open until the next rollover check.
        """
        if isinstance(price, bool):
            logger.warning("Dropping tick with non-numeric price: %r", price)
            return None
        try:
            value = float(price)
        except (TypeError, ValueError):
            logger.warning("Dropping tick with non-numeric price: %r", price)
            return None
        if not math.isfinite(value) or value <= 0:
            logger.warning("Dropping tick with invalid price: %r", price)
            return None

        with self._lock:
            ts = observed_at if observed_at is not None else self._now()
            state = self._state
            point = PricePoint(price=value, observed_at=ts, epoch=state.current_epoch)
            self._prices.append(point)
            self._state = replace(
                state,
                epoch_start_price=value if state.epoch_start_price is None else state.epoch_start_price,
                last_tick_price=value,
                current_price=value,
                last_tick_at=ts,
                tick_count=state.tick_count + 1,
            )
            self._emit(price_message(point, self._clock.time_remaining(ts)))
        return point

    def check_rollover(self, now: int | None = None) -> list[EpochResult]:
        """Settle every epoch that has closed since the last check.

        Crossed boundaries are settled one at a time, in order. One call
        settles at most ``epoch_history_size`` epochs, starting with the one
        that was open; any further crossed epochs are skipped with a single
        ``epoch_start`` for the current epoch. Epochs closing before any
        price was ever observed produce no results. Calling again within the
        same epoch is a no-op.
        """
        with self._lock:
            now = now if now is not None else self._now()
            target = self._clock.epoch_index(now)
            settled: list[EpochResult] = []
            while self._state.current_epoch < target:
                if self._state.settlement_price is None or len(settled) >= self._max_catch_up:
                    self._fast_forward(target, now)
                    break
                settled.append(self._settle(now))
            return settled

    def set_upstream_connected(self, connected: bool) -> None:
        """Record upstream feed health. Publishes ``status`` only on change."""
        with self._lock:
            if connected == self._upstream_connected:
                return
            self._upstream_connected = connected
            self._emit(status_message(connected, self._now()))
        logger.info("Upstream feed %s", "connected" if connected else "disconnected")

    # --- Readers ---

    def snapshot(self, now: int | None = None) -> dict:
        """The ``init`` message for a joining subscriber."""
        with self._lock:
            now = now if now is not None else self._now()
            state = self._state
            return init_message(
                current_price=state.current_price,
                current_epoch=state.current_epoch,
                time_remaining=self._clock.time_remaining(now),
                reference_price=state.reference_price,
                price_history=_tail(self._prices, self._snapshot_price_points),
                epoch_history=_tail(self._results, self._snapshot_epoch_results),
                epoch_timestamps=self._boundaries(now),
                upstream_connected=self._upstream_connected,
                epoch_duration=self._clock.duration_ms,
                timestamp=now,
            )

    def time_event(self, now: int | None = None) -> dict:
        with self._lock:
            now = now if now is not None else self._now()
            return time_message(self._state.current_epoch, self._clock.time_remaining(now))

    def health(self, now: int | None = None) -> dict:
        """Read-only status view for the health endpoint."""
        with self._lock:
            now = now if now is not None else self._now()
            return {
                "pythConnected": self._upstream_connected,
                "currentPrice": self._state.current_price,
                "currentEpoch": self._state.current_epoch,
                "timeRemaining": self._clock.time_remaining(now),
            }

    @property
    def state(self) -> EpochState:
        with self._lock:
            return self._state

    @property
    def current_epoch(self) -> int:
        return self.state.current_epoch

    @property
    def price_history(self) -> list[PricePoint]:
        with self._lock:
            return list(self._prices)

    @property
    def epoch_results(self) -> list[EpochResult]:
        with self._lock:
            return list(self._results)

    @property
    def upstream_connected(self) -> bool:
        return self._upstream_connected

    @property
    def clock(self) -> EpochClock:
        return self._clock

    # --- Internals (caller holds the lock) ---

    def _fast_forward(self, target: int, now: int) -> None:
        """Jump to ``target`` without producing results. Publishes one ``epoch_start``."""
        state = self._state
        if state.settlement_price is None:
            logger.info(
                "Epochs %d-%d closed with no price observed, settlement skipped",
                state.current_epoch,
                target - 1,
            )
        else:
            logger.warning(
                "Rollover stalled: skipping %d epochs (%d-%d) without settlement",
                target - state.current_epoch,
                state.current_epoch,
                target - 1,
            )
        self._state = replace(
            state,
            current_epoch=target,
            epoch_start_price=state.current_price,
            last_tick_price=None,
            tick_count=0,
        )
        self._emit(
            epoch_start_message(
                epoch=target,
                reference_price=state.reference_price,
                time_remaining=self._clock.time_remaining(now),
                timestamp=now,
                epoch_timestamps=self._boundaries(now),
            )
        )

    def _settle(self, now: int) -> EpochResult:
        """Close the current epoch and open the next one. Needs a settlement price."""
        state = self._state
        ended = state.current_epoch
        end_price = state.settlement_price

        result = EpochResult(
            epoch=ended,
            start_price=state.epoch_start_price,
            end_price=end_price,
            outcome=decide_outcome(end_price, state.reference_price),
            timestamp=now,
            tick_count=state.tick_count,
        )
        self._results.append(result)
        settlement_index = self._mark_settlement_tick()
        reference_index = self._reference_index(ended)

        self._state = EpochState(
            current_epoch=ended + 1,
            epoch_start_price=state.current_price,
            last_tick_price=None,
            reference_price=end_price,
            current_price=state.current_price,
            last_tick_at=state.last_tick_at,
            tick_count=0,
        )

        logger.info(
            "Settled epoch %d: end=%.6f ref=%s outcome=%s ticks=%d",
            ended,
            end_price,
            f"{state.reference_price:.6f}" if state.reference_price is not None else "n/a",
            result.outcome or "first epoch",
            state.tick_count,
        )

        boundaries = self._boundaries(now)
        self._emit(
            epoch_end_message(
                epoch=ended,
                end_price=end_price,
                reference_price=state.reference_price,
                settlement_index=settlement_index,
                reference_index=reference_index,
                outcome=result.outcome,
                tick_count=state.tick_count,
                timestamp=now,
                epoch_timestamps=boundaries,
            )
        )
        self._emit(
            epoch_start_message(
                epoch=ended + 1,
                reference_price=end_price,
                time_remaining=self._clock.time_remaining(now),
                timestamp=now,
                epoch_timestamps=boundaries,
            )
        )
        return result

    def _mark_settlement_tick(self) -> int:
        """Flag the newest history point as an epoch end. Returns its index."""
        if not self._prices:
            return -1
        last = self._prices[-1]
        if not last.is_epoch_end:
            self._prices[-1] = replace(last, is_epoch_end=True)
        return len(self._prices) - 1

    def _reference_index(self, ended: int) -> int:
        """Index of the newest point recorded before ``ended`` began, or -1."""
        for i in range(len(self._prices) - 1, -1, -1):
            if self._prices[i].epoch < ended:
                return i
        return -1

    def _boundaries(self, now: int) -> list[int]:
        oldest = self._prices[0].observed_at if self._prices else None
        return self._clock.epoch_end_timestamps(now, self._boundary_count, oldest)

    def _emit(self, event: dict) -> None:
        if self._publish is None:
            return
        try:
            self._publish(event)
        except Exception:
            logger.exception("Failed to publish %s event", event.get("type"))
