"""Shared fixtures for the Klaviyo MCP tests."""

import pytest

from core.cache import ResponseCache
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(max_size=10, clock=clock)
