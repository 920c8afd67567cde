import logging

import pytest

from py_ecu.cache import ConversionCache
from py_ecu.logger import logger
from py_ecu.registry import ThreadSafeRegistry, UnitRegistry
from py_ecu.settings import PreferredUnits

logger.setLevel(logging.DEBUG)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def snapshot() -> UnitRegistry:
    return UnitRegistry.with_defaults()


@pytest.fixture
def registry(snapshot) -> ThreadSafeRegistry:
    return ThreadSafeRegistry(snapshot)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> ConversionCache:
    return ConversionCache(max_size=3, ttl=60.0, clock=clock)


@pytest.fixture
def preferred_units():
    PreferredUnits.restore_defaults()
    yield PreferredUnits
    PreferredUnits.restore_defaults()
