"""FastAPI application factory and the ``epoch-relay`` console entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .core.config import Settings, get_settings
from .core.logging_setup import setup_logging
from .relay import (
    BroadcastHub,
    EpochClock,
    EpochScheduler,
    SessionManager,
    SettlementEngine,
    create_stream_router,
    create_tick_source,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Wire engine, hub, sessions, scheduler and tick source into an app.

    Everything lives on this app instance; two apps never share state.
    """
    settings = settings or get_settings()

    clock = EpochClock(settings.epoch_duration_ms)
    hub = BroadcastHub(
        queue_size=settings.subscriber_queue_size,
        send_timeout=settings.send_timeout,
        heartbeat_interval=settings.heartbeat_interval,
    )
    engine = SettlementEngine(
        clock,
        hub.broadcast,
        price_history_size=settings.price_history_size,
        epoch_history_size=settings.epoch_history_size,
        boundary_count=settings.boundary_count,
        snapshot_price_points=settings.snapshot_price_points,
        snapshot_epoch_results=settings.snapshot_epoch_results,
    )
    sessions = SessionManager(engine, hub)
    scheduler = EpochScheduler(
        engine,
        hub,
        poll_interval=settings.rollover_poll_interval,
        time_interval=settings.time_broadcast_interval,
    )
    source = create_tick_source(engine, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await hub.start()
        await scheduler.start()
        await source.start()
        logger.info(
            "Relay ready: epoch %d, %dms epochs",
            engine.current_epoch,
            settings.epoch_duration_ms,
        )
        try:
            yield
        finally:
            await source.stop()
            await scheduler.stop()
            await hub.stop()
            logger.info("Relay shut down")

    app = FastAPI(title="Epoch Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.hub = hub
    app.state.scheduler = scheduler
    app.state.tick_source = source
    app.include_router(create_stream_router(engine, hub, sessions))
    return app


def run() -> None:
    """Console entry point. Failing to bind the port is the only fatal error."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Relay starting on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
