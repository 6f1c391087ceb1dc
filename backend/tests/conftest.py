"""Pytest configuration and fixtures."""

import os

import pytest

from app.core.config import get_settings


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Keep RELAY_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("RELAY_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
