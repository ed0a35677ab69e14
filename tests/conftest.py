"""Root-level pytest configuration for all tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from codalyn.agent_runtime.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Iterator[None]:
    """Drop cached settings so environment overrides apply per test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
