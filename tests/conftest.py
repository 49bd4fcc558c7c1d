"""Shared fixtures."""

from __future__ import annotations

import pytest

from crisscross_guest.cache.store import CacheStore
from crisscross_guest.events import EventBus
from fakes import FakeHost


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store(bus: EventBus) -> CacheStore:
    return CacheStore(bus, cache_ttl=60.0)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()
