"""
Shared fixtures: a fresh ledger per test and fake collaborators wired in
through FastAPI dependency overrides.
"""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from loyalty_api.audit import MemoryAuditSink
from loyalty_api.cache import InMemoryTierCache
from loyalty_api.errors import VotingPowerUnavailable
from loyalty_api.ledger import LedgerStore, PointsPolicy
from loyalty_api.main import (
    app,
    get_notifier,
    get_random_source,
    get_store,
    get_tier_cache,
    get_voting_power_source,
)


class FixedRandomSource:
    """Always draws the same value."""

    def __init__(self, value: int):
        self.value = value
        self.calls: list[tuple[int, int]] = []

    def next(self, low: int, high: int) -> int:
        self.calls.append((low, high))
        return self.value


class FakeVotingPower:
    def __init__(self, power: str = "12.5", fail: bool = False):
        self.power = power
        self.fail = fail
        self.lookups: list[str] = []

    async def get_voting_power(self, wallet: str) -> str:
        self.lookups.append(wallet)
        if self.fail:
            raise VotingPowerUnavailable("RPC unreachable")
        return self.power


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def notify(self, recipient: str, template: str, data: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("SMTP relay down")
        self.sent.append((recipient, template, data))


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def store(audit: MemoryAuditSink) -> LedgerStore:
    """Fresh ledger with default points policy."""
    return LedgerStore(policy=PointsPolicy(), audit=audit)


@pytest.fixture
def voting_power() -> FakeVotingPower:
    return FakeVotingPower()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def tier_cache() -> InMemoryTierCache:
    return InMemoryTierCache()


@pytest.fixture
def random_source() -> FixedRandomSource:
    return FixedRandomSource(42)


@pytest.fixture
def client(store, voting_power, notifier, tier_cache, random_source):
    """Test client with all collaborators overridden."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_voting_power_source] = lambda: voting_power
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_tier_cache] = lambda: tier_cache
    app.dependency_overrides[get_random_source] = lambda: random_source
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
