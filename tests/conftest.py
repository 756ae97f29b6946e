"""Shared test fixtures.

Provides:
- Settings isolated from the developer's environment and .env file
- A fresh settings singleton for every test
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from src.revintel.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop REVINTEL_* overrides and the cached singleton around each test."""
    for key in list(os.environ):
        if key.startswith("REVINTEL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setitem(Settings.model_config, "env_file", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return get_settings()
