"""GBM-based tick simulator for running the relay without an upstream feed."""

from __future__ import annotations

import asyncio
import logging
import math

import numpy as np

from .engine import SettlementEngine
from .interface import TickSource

logger = logging.getLogger(__name__)


class GBMPriceModel:
    """Geometric Brownian Motion for a single instrument.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Where:
        S(t)   = current price
        mu     = annualized drift
        sigma  = annualized volatility
        dt     = time step as a fraction of a year
        Z      = standard normal draw

    Crypto trades around the clock, so a year is 365 * 24 * 3600 seconds.
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600  # 31,536,000

    def __init__(
        self,
        seed_price: float = 150.0,
        sigma: float = 0.8,
        mu: float = 0.0,
        step_seconds: float = 0.1,
        event_probability: float = 0.001,
        seed: int | None = None,
    ) -> None:
        if seed_price <= 0:
            raise ValueError(f"seed price must be positive, got {seed_price}")
        self._price = float(seed_price)
        self._sigma = sigma
        self._mu = mu
        self._dt = step_seconds / self.SECONDS_PER_YEAR
        self._event_prob = event_probability
        self._rng = np.random.default_rng(seed)

    @property
    def price(self) -> float:
        return self._price

    def step(self) -> float:
        """Advance one time step and return the new price."""
        drift = (self._mu - 0.5 * self._sigma**2) * self._dt
        diffusion = self._sigma * math.sqrt(self._dt) * self._rng.standard_normal()
        self._price *= math.exp(drift + diffusion)

        # Occasional small jump so epochs are not all coin flips around flat
        if self._rng.random() < self._event_prob:
            shock = float(self._rng.uniform(0.002, 0.005)) * (1 if self._rng.random() < 0.5 else -1)
            self._price *= 1 + shock
            logger.debug("Simulated jump: %+.2f%%", shock * 100)

        return self._price


class SimulatorTickSource(TickSource):
    """TickSource backed by the GBM model.

    Runs a background asyncio task that steps the model every
    ``update_interval`` seconds and feeds the result to the engine. Reports
    itself as a connected upstream while running.
    """

    def __init__(
        self,
        engine: SettlementEngine,
        seed_price: float = 150.0,
        sigma: float = 0.8,
        update_interval: float = 0.1,
        event_probability: float = 0.001,
        seed: int | None = None,
    ) -> None:
        self._engine = engine
        self._interval = update_interval
        self._model = GBMPriceModel(
            seed_price=seed_price,
            sigma=sigma,
            step_seconds=update_interval,
            event_probability=event_probability,
            seed=seed,
        )
        self._task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        # Seed the engine so the first snapshot already has a price
        self._engine.on_tick(self._model.price)
        self._task = asyncio.create_task(self._run_loop(), name="simulator-loop")
        self._engine.set_upstream_connected(True)
        logger.info("Simulator started at %.4f, %.2fs interval", self._model.price, self._interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._engine.set_upstream_connected(False)
        logger.info("Simulator stopped")

    async def _run_loop(self) -> None:
        """Core loop: step the model, feed the engine, sleep."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._engine.on_tick(self._model.step())
            except Exception:
                logger.exception("Simulator step failed")
