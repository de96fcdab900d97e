"""
Fuel Points engine facade.

Purpose
-------
Wires one player session together: the optimistic client state, the
completion workflow, the lifecycle service, the update event bus and a
debounced authoritative resync.

Usage
-----
    store = InMemoryCompletionStore()
    engine = FuelEngine("player-1", store)
    await engine.start()

    result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "boost-7")
    snapshot = engine.get_local_state()

    await engine.close()
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional, Sequence, Type

from fuelpoints.core.clock import Clock, SystemClock
from fuelpoints.core.config import Config
from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.event import (
    CallbackType,
    DebouncedResync,
    ListenerPriority,
    Unsubscribe,
    UpdateEvent,
    UpdateEventBus,
)
from fuelpoints.core.logging import LogContext, get_logger
from fuelpoints.domain.models.actions import ActionKind, InstanceState
from fuelpoints.domain.models.player import PlayerState, RolloverResult
from fuelpoints.modules.client_state.state import LocalStateSnapshot, OptimisticClientState
from fuelpoints.modules.completion.workflow import ActionCompletionWorkflow, AttemptResult
from fuelpoints.modules.ledger.interface import CompletionStore
from fuelpoints.modules.lifecycle.service import LifecycleService
from fuelpoints.modules.shared.formulas import cumulative_fp_for_level
from fuelpoints.modules.shared.windows import Weekday

logger = get_logger(__name__)

# Events the engine publishes about its own resync work
_SELF_SOURCES = frozenset({"level_up", "resync"})

_MAX_RESYNC_ROUNDS = 3


class FuelEngine:
    """
    Client-side engine for one player.

    Args:
        player_id: Player this session belongs to
        store: Authoritative completion store
        clock: Source of "now" and the local date (default: system clock)
        bus: Update event bus (default: a new bus owned by the engine)
        config: Configuration manager
        debounce_ms: Resync coalescing window
            (default: ``client.resync_debounce_ms``, then FUEL_RESYNC_DEBOUNCE_MS)
    """

    def __init__(
        self,
        player_id: str,
        store: CompletionStore,
        clock: Optional[Clock] = None,
        bus: Optional[UpdateEventBus] = None,
        config: Type[ConfigManager] = ConfigManager,
        debounce_ms: Optional[int] = None,
    ) -> None:
        self.player_id = player_id
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config
        self._owns_bus = bus is None
        self.bus = bus or UpdateEventBus()

        self.state = OptimisticClientState(
            player_id,
            self.clock.today(),
            boost_quota=config.get_int("boosts.daily_quota", 3),
            reset_weekday=Weekday.from_value(config.get("boosts.reset_weekday", "sunday")),
        )
        self.workflow = ActionCompletionWorkflow(
            player_id,
            store,
            self.state,
            self.clock,
            config,
            self.bus,
            get_logger("fuelpoints.modules.completion.workflow"),
        )
        self.lifecycle = LifecycleService(
            store, config, self.bus, get_logger("fuelpoints.modules.lifecycle.service")
        )

        if debounce_ms is None:
            debounce_ms = config.get_int("client.resync_debounce_ms", Config.RESYNC_DEBOUNCE_MS)
        self.resync_scheduler = DebouncedResync(
            self.resync,
            delay_seconds=debounce_ms / 1000,
            should_refetch=lambda event: event.source not in _SELF_SOURCES,
        )
        self._unsubscribe_resync = self.bus.subscribe(
            self.resync_scheduler,
            priority=ListenerPriority.LOW,
            identifier=f"resync:{player_id}",
        )
        self._closed = False

    # ------------------------------------------------------------------ #
    # Session
    # ------------------------------------------------------------------ #

    async def start(self) -> LocalStateSnapshot:
        """Create the player if needed and load the first authoritative state."""
        await self.store.ensure_player(self.player_id)
        return await self.resync()

    async def resync(self) -> LocalStateSnapshot:
        """
        Refetch authoritative state and rebuild the local mirror.

        Also runs the level-up check: when stored FP has reached the next
        level's cumulative threshold, ask the store to level up (idempotent
        at the store, so a repeated call never double-increments).

        The reads are repeated when a completion settles while they are in
        flight, up to ``_MAX_RESYNC_ROUNDS`` times; only completions settled
        before the last round began are dropped from the mirror.
        """
        async with LogContext(player_id=self.player_id, operation="resync"):
            today = self.clock.today()
            for round_number in range(1, _MAX_RESYNC_ROUNDS + 1):
                settled_before = self.state.settled_ids()
                player = await self._fetch_player()
                today_stats = await self.store.get_today_stats(self.player_id, today)
                occurrences = await self.store.get_last_occurrences(self.player_id)
                instances = await self.store.list_instances(self.player_id, active_only=False)
                if self.state.settled_ids() <= settled_before:
                    break
                logger.debug(
                    "Completion settled during resync, reading again",
                    extra={"round": round_number},
                )

            self.state.apply_authoritative(
                player, today_stats, occurrences, instances, settled_before=settled_before
            )
            logger.debug(
                "Local state resynced",
                extra={"fuel_points": player.fuel_points, "level": player.level},
            )
        return self.state.snapshot()

    async def _fetch_player(self) -> PlayerState:
        player = await self.store.get_player_state(self.player_id)
        if player.fuel_points < cumulative_fp_for_level(player.level + 1):
            return player

        result = await self.store.trigger_level_up_if_eligible(self.player_id, player.fuel_points)
        if result.level_changed:
            player = await self.store.get_player_state(self.player_id)
            self.bus.publish(
                UpdateEvent(
                    source="level_up",
                    occurred_at=self.clock.now(),
                    extra={
                        "previous_level": result.previous_level,
                        "new_level": result.new_level,
                    },
                )
            )
        return player

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_resync()
        await self.resync_scheduler.close()
        if self._owns_bus:
            await self.bus.close()
        else:
            await self.bus.drain()

    # ------------------------------------------------------------------ #
    # Completions
    # ------------------------------------------------------------------ #

    async def attempt_completion(
        self,
        kind: ActionKind,
        instance_id: Optional[str] = None,
        selection: Any = None,
    ) -> AttemptResult:
        return await self.workflow.attempt(kind, instance_id, selection)

    def subscribe(
        self,
        listener: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
    ) -> Unsubscribe:
        return self.bus.subscribe(listener, priority=priority, identifier=identifier)

    def get_local_state(self) -> LocalStateSnapshot:
        self.state.ensure_day(self.clock.today())
        return self.state.snapshot()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start_challenge(self, challenge_id: str, **overrides: Optional[int]) -> InstanceState:
        instance = await self.lifecycle.start_challenge(self.player_id, challenge_id, **overrides)
        self.state.upsert_instance(instance)
        return instance

    async def create_custom_challenge(
        self,
        actions: Sequence[Any],
        *,
        name: Optional[str] = None,
        daily_minimum: int = 1,
    ) -> InstanceState:
        instance = await self.lifecycle.create_custom_challenge(
            self.player_id, actions, name=name, daily_minimum=daily_minimum
        )
        self.state.upsert_instance(instance)
        return instance

    async def start_quest(self, quest_id: str) -> InstanceState:
        instance = await self.lifecycle.start_quest(self.player_id, quest_id)
        self.state.upsert_instance(instance)
        return instance

    async def cancel_instance(self, kind: ActionKind, instance_id: str) -> InstanceState:
        instance = await self.lifecycle.cancel_instance(self.player_id, kind, instance_id)
        self.state.upsert_instance(instance)
        return instance

    # ------------------------------------------------------------------ #
    # Day rollover
    # ------------------------------------------------------------------ #

    async def roll_over_day(self, day: Optional[date] = None) -> RolloverResult:
        """
        Close out a local day (default: yesterday) at the store.

        Stands in for the external daily process that extends or resets
        the burn streak and pays tier bonuses.
        """
        day = day or self.clock.today() - timedelta(days=1)
        result = await self.store.apply_day_rollover(self.player_id, day)
        if result.applied:
            self.bus.publish(
                UpdateEvent(
                    fp_earned=result.streak_bonus,
                    source="rollover",
                    occurred_at=self.clock.now(),
                    extra={"burn_streak": result.burn_streak},
                )
            )
        return result
