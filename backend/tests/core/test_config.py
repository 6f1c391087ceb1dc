"""Tests for Settings and logging setup."""

import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.feeds import DEFAULT_HERMES_WS_URL, SOL_USD_FEED_ID
from app.core.logging_setup import setup_logging


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self):
        settings = Settings()
        assert settings.epoch_duration_ms == 10_000
        assert settings.port == 8080
        assert settings.feed_source == "pyth"
        assert settings.pyth_ws_url == DEFAULT_HERMES_WS_URL
        assert settings.feed_id == SOL_USD_FEED_ID
        assert settings.price_history_size == 600
        assert settings.snapshot_price_points == 400
        assert settings.epoch_history_size == 20
        assert settings.snapshot_epoch_results == 10
        assert settings.boundary_count == 10
        assert settings.log_level == "INFO"

    def test_env_override(self, monkeypatch):
        """Test RELAY_-prefixed variables override defaults."""
        monkeypatch.setenv("RELAY_EPOCH_DURATION_MS", "5000")
        monkeypatch.setenv("RELAY_FEED_SOURCE", "simulator")
        monkeypatch.setenv("RELAY_PORT", "9001")

        settings = Settings()

        assert settings.epoch_duration_ms == 5000
        assert settings.feed_source == "simulator"
        assert settings.port == 9001

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    @pytest.mark.parametrize("duration", [0, -10_000])
    def test_rejects_non_positive_epoch_duration(self, duration):
        with pytest.raises(ValidationError):
            Settings(epoch_duration_ms=duration)

    def test_rejects_unknown_feed_source(self):
        with pytest.raises(ValidationError):
            Settings(feed_source="binance")

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_rejects_slow_rollover_poll(self):
        """Test the rollover poll must stay well under a second."""
        with pytest.raises(ValidationError):
            Settings(rollover_poll_interval=1.0)

    def test_loading_settings_does_not_import_relay(self):
        """Test the config layer stands alone from the relay package."""
        backend = Path(__file__).resolve().parents[2]
        code = (
            "import sys; import app.core.config; "
            "assert not any(m == 'app.relay' or m.startswith('app.relay.') for m in sys.modules); "
            "assert 'websockets' not in sys.modules"
        )
        result = subprocess.run(
            [sys.executable, "-c", code],
            cwd=backend,
            env={**os.environ, "PYTHONPATH": str(backend)},
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr


class TestSetupLogging:
    """Root logger configuration."""

    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_installs_single_handler(self):
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_uvicorn_propagates_to_root(self):
        setup_logging("INFO")
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            uv_logger = logging.getLogger(name)
            assert uv_logger.propagate
            assert uv_logger.handlers == []
