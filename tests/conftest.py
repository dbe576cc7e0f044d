"""Shared pytest fixtures for all tests."""

import random
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from database import Base, Settings, build_session_factory
from core.broadcaster import SnapshotBroadcaster
from core.repository import RoundRepository
from core.round_engine import RoundEngine


class ScriptedRandom(random.Random):
    """random.Random whose random() replays fixed values (0.1 -> red, 0.9 -> black)."""

    def __init__(self, values=(0.1,), index: int = 0):
        super().__init__(0)
        self._values = list(values)
        self._calls = 0
        self._index = index

    def random(self):
        value = self._values[min(self._calls, len(self._values) - 1)]
        self._calls += 1
        return value

    def randrange(self, *args, **kwargs):
        return self._index


class StubOracle:
    """Eligibility oracle that accepts everyone except the denied wallets."""

    def __init__(self, denied=()):
        self.denied = set(denied)
        self.calls = []

    async def is_eligible(self, voter_id: str) -> bool:
        self.calls.append(voter_id)
        return voter_id not in self.denied


class FakeClock:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite://",
        voting_window_seconds=30,
        reveal_window_seconds=5,
        heartbeat_interval_seconds=5,
        tick_interval_seconds=0.01,
        min_token_balance=1_000_000,
    )


@pytest.fixture
def session_factory():
    factory = build_session_factory("sqlite://")
    Base.metadata.create_all(bind=factory.kw["bind"])
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def repository(session_factory):
    return RoundRepository(session_factory)


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broadcaster():
    return SnapshotBroadcaster(queue_size=8)


@pytest.fixture
def make_engine(repository, oracle, broadcaster, test_settings, clock):
    """Factory so a test can build several engines over the same store (restart tests)."""

    def _make(rng=None, **overrides):
        kwargs = dict(
            repository=repository,
            eligibility=oracle,
            broadcaster=broadcaster,
            settings=test_settings,
            rng=rng or ScriptedRandom(),
            clock=clock,
        )
        kwargs.update(overrides)
        return RoundEngine(**kwargs)

    return _make


@pytest_asyncio.fixture
async def engine(make_engine):
    round_engine = make_engine()
    await round_engine.start(autotick=False)
    yield round_engine
    await round_engine.shutdown()
