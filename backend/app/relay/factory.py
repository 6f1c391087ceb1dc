"""Factory for creating tick sources."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .engine import SettlementEngine
from .interface import TickSource

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def create_tick_source(engine: SettlementEngine, settings: Settings) -> TickSource:
    """Create the tick source selected by ``settings.feed_source``.

    - "pyth"      -> PythTickSource (live Hermes feed)
    - "simulator" -> SimulatorTickSource (GBM, no network)

    Returns an unstarted source. Caller must await source.start().
    """
    if settings.feed_source == "simulator":
        from .simulator import SimulatorTickSource

        logger.info("Tick source: GBM simulator")
        return SimulatorTickSource(
            engine=engine,
            seed_price=settings.simulator_seed_price,
            sigma=settings.simulator_sigma,
            update_interval=settings.simulator_interval,
        )

    from .pyth_client import PythTickSource

    logger.info("Tick source: Pyth Hermes (%s)", settings.pyth_ws_url)
    return PythTickSource(
        engine=engine,
        ws_url=settings.pyth_ws_url,
        feed_id=settings.feed_id,
        reconnect_delay=settings.reconnect_delay,
        reconnect_max_delay=settings.reconnect_max_delay,
        connect_timeout=settings.connect_timeout,
    )
