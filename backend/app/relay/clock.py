"""Wall-clock epoch arithmetic."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


class EpochClock:
    """Maps wall-clock milliseconds onto a fixed epoch grid.

    Epoch ``n`` covers ``[n * duration, (n + 1) * duration)``. Boundaries are
    aligned to the Unix epoch, never to process start, so every instance
    watching the same clock agrees on them. Holds no state besides the
    duration.
    """

    def __init__(self, duration_ms: int = 10_000) -> None:
        if duration_ms <= 0:
            raise ValueError(f"epoch duration must be positive, got {duration_ms}")
        self._duration = int(duration_ms)

    @property
    def duration_ms(self) -> int:
        return self._duration

    def epoch_index(self, now: int) -> int:
        return now // self._duration

    def epoch_start(self, index: int) -> int:
        return index * self._duration

    def epoch_end(self, index: int) -> int:
        return (index + 1) * self._duration

    def time_remaining(self, now: int) -> int:
        """Milliseconds until the current epoch closes, in ``(0, duration]``."""
        return self._duration - now % self._duration

    def epoch_end_timestamps(self, now: int, count: int = 10, oldest: int | None = None) -> list[int]:
        """Epoch-end timestamps for drawing boundary markers.

        Past ends at or after ``oldest`` (the first retained price point) come
        first, then ``count`` upcoming ends starting with the current epoch's.
        """
        current_start = self.epoch_start(self.epoch_index(now))
        timestamps: list[int] = []

        if oldest is not None:
            # Smallest multiple of the duration that is >= oldest
            first = -(-oldest // self._duration) * self._duration
            timestamps.extend(range(first, current_start + 1, self._duration))

        for i in range(1, count + 1):
            timestamps.append(current_start + i * self._duration)
        return timestamps
