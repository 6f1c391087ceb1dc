"""Runtime settings loaded from RELAY_-prefixed environment variables and .env."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .feeds import DEFAULT_HERMES_WS_URL, SOL_USD_FEED_ID


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELAY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    epoch_duration_ms: int = Field(
        default=10_000, description="Length of one betting epoch in milliseconds", gt=0
    )
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=8080, description="Listen port", ge=0, le=65535)

    feed_source: Literal["pyth", "simulator"] = Field(
        default="pyth",
        description="Upstream tick source: live Pyth Hermes feed or the local GBM simulator",
    )
    pyth_ws_url: str = Field(default=DEFAULT_HERMES_WS_URL, description="Pyth Hermes WebSocket URL")
    feed_id: str = Field(default=SOL_USD_FEED_ID, description="Pyth price feed id of the instrument")
    reconnect_delay: float = Field(
        default=3.0, description="Initial delay before reconnecting upstream (seconds)", gt=0
    )
    reconnect_max_delay: float = Field(
        default=30.0, description="Upper bound of the reconnect backoff (seconds)", gt=0
    )
    connect_timeout: float = Field(
        default=10.0, description="Upstream connection open timeout (seconds)", gt=0
    )

    price_history_size: int = Field(default=600, description="Price points retained", ge=1)
    snapshot_price_points: int = Field(
        default=400, description="Price points sent to a joining subscriber", ge=1
    )
    epoch_history_size: int = Field(default=20, description="Epoch results retained", ge=1)
    snapshot_epoch_results: int = Field(
        default=10, description="Epoch results sent to a joining subscriber", ge=1
    )
    boundary_count: int = Field(
        default=10, description="Upcoming epoch-end timestamps included in messages", ge=1
    )

    rollover_poll_interval: float = Field(
        default=0.05, description="Rollover check interval (seconds)", gt=0, lt=1
    )
    time_broadcast_interval: float = Field(
        default=0.1, description="Countdown broadcast interval (seconds)", gt=0
    )
    heartbeat_interval: float = Field(default=30.0, description="Heartbeat interval (seconds)", gt=0)
    subscriber_queue_size: int = Field(
        default=256, description="Outbound messages buffered per subscriber before disconnect", ge=1
    )
    send_timeout: float = Field(
        default=5.0, description="Max seconds a single send to a subscriber may take", gt=0
    )

    simulator_seed_price: float = Field(default=150.0, description="Simulator starting price", gt=0)
    simulator_sigma: float = Field(default=0.8, description="Simulator annualized volatility", ge=0)
    simulator_interval: float = Field(default=0.1, description="Simulator tick interval (seconds)", gt=0)

    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unknown log level: {value}")
        return level


@lru_cache
def get_settings() -> Settings:
    return Settings()
