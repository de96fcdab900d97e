"""
Pytest Configuration and Fixtures for the Fuel Points Test Suite
================================================================

Purpose
-------
Centralized fixtures shared by unit and integration tests: a manually
driven clock, configuration reset, the in-memory store, the update event
bus and a started engine session.

Responsibilities
----------------
- Force the testing environment before any fuelpoints module is imported
- Reset ConfigManager overrides around every test
- Provide store, bus and engine fixtures wired to one FixedClock
- Domain event assertion helpers

Non-Responsibilities
--------------------
- SQL store setup (see tests/integration, which owns its database fixtures)
- Business logic (delegated to domain models and services)

Architecture Notes
------------------
- Unit tests run against InMemoryCompletionStore (fast, isolated)
- The engine fixture uses a long debounce window; tests that need the
  background resync call ``engine.resync_scheduler.flush()`` explicitly
"""

from __future__ import annotations

import os

# Logging and static config load on import; the environment must be set first
os.environ.setdefault("FUEL_ENV", "testing")
os.environ.setdefault("FUEL_LOG_LEVEL", "DEBUG")

from datetime import datetime, timezone  # noqa: E402
from typing import AsyncGenerator, Generator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from fuelpoints.core.clock import FixedClock  # noqa: E402
from fuelpoints.core.config import Config  # noqa: E402
from fuelpoints.core.config.manager import ConfigManager  # noqa: E402
from fuelpoints.core.event import UpdateEvent, UpdateEventBus  # noqa: E402
from fuelpoints.core.logging import clear_log_context  # noqa: E402
from fuelpoints.modules.completion import FuelEngine  # noqa: E402
from fuelpoints.modules.ledger import InMemoryCompletionStore  # noqa: E402

PLAYER_ID = "player-1"

# Monday 2024-03-04, 09:00 UTC
START = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["FUEL_ENV"] = "testing"
    Config.load()


@pytest.fixture(autouse=True)
def fresh_config() -> Generator[type, None, None]:
    """
    Reload YAML defaults and drop overrides around every test.

    Scope: function
    """
    ConfigManager.initialize()
    clear_log_context()
    yield ConfigManager
    ConfigManager.reset_overrides()
    clear_log_context()


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def store(clock: FixedClock) -> InMemoryCompletionStore:
    return InMemoryCompletionStore(clock)


@pytest_asyncio.fixture
async def bus() -> AsyncGenerator[UpdateEventBus, None]:
    event_bus = UpdateEventBus()
    yield event_bus
    if not event_bus.is_closed:
        await event_bus.close()


@pytest.fixture
def published(bus: UpdateEventBus) -> list:
    """Every UpdateEvent published on `bus`, in order."""
    events: list[UpdateEvent] = []
    bus.subscribe(events.append, identifier="test:published")
    return events


@pytest_asyncio.fixture
async def engine(
    store: InMemoryCompletionStore,
    clock: FixedClock,
    bus: UpdateEventBus,
) -> AsyncGenerator[FuelEngine, None]:
    """
    Started engine session for PLAYER_ID.

    Scope: function
    Uses: Workflow and engine tests that go through the full attempt path
    """
    session = FuelEngine(PLAYER_ID, store, clock=clock, bus=bus, debounce_ms=10_000)
    await session.start()
    yield session
    await session.close()


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def assert_domain_event_emitted(domain_model, event_name: str) -> bool:
    """
    Assert that a domain model emitted a specific event.

    Usage:
        player.recompute_level()
        assert assert_domain_event_emitted(player, "player.leveled_up")
    """
    events = domain_model.get_pending_events()
    return any(event.event_name == event_name for event in events)


def get_domain_event_payload(domain_model, event_name: str) -> dict | None:
    """
    Get the payload of a specific domain event.

    Usage:
        player.recompute_level()
        payload = get_domain_event_payload(player, "player.leveled_up")
        assert payload["new_level"] == 2
    """
    events = domain_model.get_pending_events()
    for event in events:
        if event.event_name == event_name:
            return event.payload
    return None
