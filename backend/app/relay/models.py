"""Data models for the epoch relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Outcome = Literal["up", "down"]


def decide_outcome(end_price: float, reference_price: float | None) -> Outcome | None:
    """'up' if the epoch closed above the reference, else 'down'.

    Ties resolve to 'down'. Without a reference there is nothing to compare
    against and the outcome is None.
    """
    if reference_price is None:
        return None
    return "up" if end_price > reference_price else "down"


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A single accepted tick, tagged with the epoch it was counted in."""

    price: float
    observed_at: int  # Unix milliseconds
    epoch: int
    is_epoch_end: bool = False

    def to_dict(self) -> dict:
        """Serialize for JSON transmission."""
        return {
            "price": self.price,
            "timestamp": self.observed_at,
            "epoch": self.epoch,
            "isEpochEnd": self.is_epoch_end,
        }


@dataclass(frozen=True, slots=True)
class EpochResult:
    """Settlement record of one closed epoch.

    ``tick_count == 0`` marks an epoch that saw no ticks and was settled on
    the carried-forward price.
    """

    epoch: int
    start_price: float | None
    end_price: float
    outcome: Outcome | None
    timestamp: int  # Unix milliseconds
    tick_count: int = 0

    def to_dict(self) -> dict:
        return {
            "epoch": self.epoch,
            "startPrice": self.start_price,
            "endPrice": self.end_price,
            "outcome": self.outcome,
            "timestamp": self.timestamp,
            "tickCount": self.tick_count,
        }


@dataclass(frozen=True, slots=True)
class EpochState:
    """Engine state. Replaced as a whole on every transition, never patched."""

    current_epoch: int
    epoch_start_price: float | None = None
    last_tick_price: float | None = None
    reference_price: float | None = None
    current_price: float | None = None
    last_tick_at: int | None = None
    tick_count: int = 0

    @property
    def settlement_price(self) -> float | None:
        """Last tick of this epoch, else the last price ever seen."""
        if self.last_tick_price is not None:
            return self.last_tick_price
        return self.current_price
