"""Abstract interface for upstream tick sources."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TickSource(ABC):
    """Contract for upstream price feeds.

    Implementations push ticks into a SettlementEngine on their own schedule
    through ``engine.on_tick`` and report feed health through
    ``engine.set_upstream_connected``. They never read engine state.

    Lifecycle:
        source = create_tick_source(engine, settings)
        await source.start()
        # ... app runs; the source reconnects on its own ...
        await source.stop()
    """

    @abstractmethod
    async def start(self) -> None:
        """Begin delivering ticks in a background task.

        Returns without waiting for the upstream connection. Must be called
        exactly once.
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop the background task and release resources.

        Safe to call multiple times. After stop(), the source will not call
        into the engine again.
        """

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the upstream feed is currently delivering."""
