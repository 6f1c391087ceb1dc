"""Outbound message schema.

Every message is a flat JSON object with a ``type`` discriminator and
camelCase keys. Timestamps are Unix milliseconds.

    init         full snapshot sent once on join
    price        each accepted tick
    time         countdown, on a fixed sub-second cadence
    epoch_end    settlement of the closed epoch
    epoch_start  immediately after epoch_end
    heartbeat    fixed interval liveness signal
    status       upstream connected / disconnected
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import EpochResult, Outcome, PricePoint


def init_message(
    *,
    current_price: float | None,
    current_epoch: int,
    time_remaining: int,
    reference_price: float | None,
    price_history: Iterable[PricePoint],
    epoch_history: Iterable[EpochResult],
    epoch_timestamps: list[int],
    upstream_connected: bool,
    epoch_duration: int,
    timestamp: int,
) -> dict:
    return {
        "type": "init",
        "currentPrice": current_price,
        "currentEpoch": current_epoch,
        "timeRemaining": time_remaining,
        "referencePrice": reference_price,
        "priceHistory": [point.to_dict() for point in price_history],
        "epochHistory": [result.to_dict() for result in epoch_history],
        "epochTimestamps": epoch_timestamps,
        "pythConnected": upstream_connected,
        "epochDuration": epoch_duration,
        "timestamp": timestamp,
    }


def price_message(point: PricePoint, time_remaining: int) -> dict:
    return {
        "type": "price",
        "price": point.price,
        "timestamp": point.observed_at,
        "epoch": point.epoch,
        "timeRemaining": time_remaining,
    }


def time_message(epoch: int, time_remaining: int) -> dict:
    return {"type": "time", "epoch": epoch, "timeRemaining": time_remaining}


def epoch_end_message(
    *,
    epoch: int,
    end_price: float,
    reference_price: float | None,
    settlement_index: int,
    reference_index: int,
    outcome: Outcome | None,
    tick_count: int,
    timestamp: int,
    epoch_timestamps: list[int],
) -> dict:
    """``referencePrice`` is the price the ended epoch was judged against."""
    return {
        "type": "epoch_end",
        "epoch": epoch,
        "endPrice": end_price,
        "referencePrice": reference_price,
        "settlementIndex": settlement_index,
        "referenceIndex": reference_index,
        "outcome": outcome,
        "tickCount": tick_count,
        "timestamp": timestamp,
        "epochTimestamps": epoch_timestamps,
    }


def epoch_start_message(
    *,
    epoch: int,
    reference_price: float | None,
    time_remaining: int,
    timestamp: int,
    epoch_timestamps: list[int],
) -> dict:
    return {
        "type": "epoch_start",
        "epoch": epoch,
        "referencePrice": reference_price,
        "timeRemaining": time_remaining,
        "timestamp": timestamp,
        "epochTimestamps": epoch_timestamps,
    }


def heartbeat_message(timestamp: int, clients: int) -> dict:
    return {"type": "heartbeat", "timestamp": timestamp, "clients": clients}


def status_message(upstream_connected: bool, timestamp: int) -> dict:
    return {"type": "status", "pythConnected": upstream_connected, "timestamp": timestamp}
