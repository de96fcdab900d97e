"""
Fuel Points
===========

Gamified health-progression engine: players earn Fuel Points by completing
time-gated actions (daily boosts, challenge days, quest weeks and health
reassessments), level up on a geometric curve and keep a daily burn streak.

Quick start::

    from fuelpoints import FuelEngine, InMemoryCompletionStore, ActionKind

    engine = FuelEngine("player-1", InMemoryCompletionStore())
    await engine.start()
    await engine.attempt_completion(ActionKind.DAILY_BOOST, "boost-1")
"""

from fuelpoints.core.clock import Clock, FixedClock, SystemClock
from fuelpoints.core.event import UpdateEvent, UpdateEventBus
from fuelpoints.domain.models import ActionKind, InstanceState, InstanceStatus, PlayerState
from fuelpoints.modules.client_state import LocalStateSnapshot
from fuelpoints.modules.completion import AttemptResult, AttemptState, FuelEngine
from fuelpoints.modules.ledger import (
    CompletionStore,
    InMemoryCompletionStore,
    SqlCompletionStore,
)

__version__ = "0.1.0"

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "UpdateEvent",
    "UpdateEventBus",
    "ActionKind",
    "InstanceState",
    "InstanceStatus",
    "PlayerState",
    "LocalStateSnapshot",
    "AttemptResult",
    "AttemptState",
    "FuelEngine",
    "CompletionStore",
    "InMemoryCompletionStore",
    "SqlCompletionStore",
]
