"""
Pytest fixtures for Entropy Protocol tests.

Provides seeded randomness, a controllable clock, session stores and
in-process hubs for isolated testing.
"""

import random

import pytest

from entropy_protocol.config import EntropyConfig
from entropy_protocol.engine.bots import idle_policy
from entropy_protocol.state.catalog import initial_system_state
from entropy_protocol.state.event_bus import EventBus
from entropy_protocol.state.session import SessionStore


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class NoEventRandom(random.Random):
    """Seeded random whose event rolls always miss."""

    def random(self) -> float:
        return 0.999


@pytest.fixture
def rng():
    """Deterministic random source."""
    return random.Random(1234)


@pytest.fixture
def quiet_rng():
    """Random source that never triggers disasters or bot moves."""
    return NoEventRandom(1234)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def config():
    """Default rules."""
    return EntropyConfig()


@pytest.fixture
def fast_config():
    """Short timers for protocol tests."""
    return EntropyConfig(
        tick_interval=0.05,
        heartbeat_interval=0.02,
        cooldown_interval=0.05,
        connect_timeout=0.5,
        request_timeout=0.3,
        min_players=2,
    )


@pytest.fixture
def system():
    """Fresh city."""
    return initial_system_state()


@pytest.fixture
def store(config, quiet_rng, clock, bus):
    """Session store with no random events and idle bots."""
    return SessionStore(config, rng=quiet_rng, clock=clock, bot_policy=idle_policy, bus=bus)


@pytest.fixture
def lobby(store):
    """Store with a hosted lobby and three more players (four total)."""
    store.create_session("HOST", host_id="host", lobby_code="ABCD")
    store.join("p2", "BOB")
    store.join("p3", "CARA")
    store.join("p4", "DEV")
    return store


@pytest.fixture
def playing(lobby, clock):
    """Store with a started game."""
    lobby.start(now=clock())
    return lobby
