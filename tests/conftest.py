"""Shared fixtures: a controllable clock, a fake hub and an in-memory store."""

import pytest

from factories import FakeHubSource, MockClock
from settings import SyncConfig
from zone_store import InMemoryZoneStore


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def store() -> InMemoryZoneStore:
    return InMemoryZoneStore()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(enabled=True, interval_seconds=60, default_quota_percentage=80)


@pytest.fixture
def hub() -> FakeHubSource:
    return FakeHubSource()
