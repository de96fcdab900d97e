"""
Optimistic, eventually-consistent client mirror of a player's progression.

Purpose
-------
Holds exactly what a UI needs to render without refetching: FP, level,
streak, today's boost counters, per-stream last occurrences and the
progress of the player's challenges and quests.

Design Notes
------------
- The mirror is an authoritative *base* (last resync) plus a list of
  optimistic mutations layered on top. Every snapshot is computed from
  both, so reverting a mutation restores exactly the pre-attempt view.
- A mutation is *pending* while its store call is outstanding and
  *settled* once confirmed or absorbed as a conflict. Settled mutations
  stay visible until the next authoritative resync replaces the base;
  pending ones survive a resync and are re-applied on the new base.
- Only the completion workflow and resyncs mutate this object.
"""

from __future__ import annotations

import dataclasses
import itertools
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from fuelpoints.domain.models.actions import (
    ActionKind,
    InstanceState,
    InstanceStatus,
    Occurrence,
    StateKey,
)
from fuelpoints.domain.models.player import PlayerState
from fuelpoints.modules.ledger.interface import TodayStats
from fuelpoints.modules.shared.formulas import level_threshold
from fuelpoints.modules.shared.windows import Weekday, week_start, weekly_fixed_day_reset


@dataclass(frozen=True)
class LocalStateSnapshot:
    """Immutable view handed to UI code. Mappings are read-only proxies."""

    player_id: str
    today: date
    fuel_points: int
    level: int
    burn_streak: int
    next_level_threshold: int
    days_since_last_fuel_points: int
    fp_earned_today: int
    boosts_completed_today: int
    boosts_remaining_today: int
    completed_boost_ids: Sequence[str]
    completed_boost_ids_this_week: Sequence[str]
    week_start: date
    days_until_boost_reset: int
    last_occurrences: Mapping[StateKey, Occurrence]
    instance_progress: Mapping[StateKey, InstanceState]
    pending_attempts: int = 0

    def last_occurrence(
        self, kind: ActionKind, instance_id: Optional[str] = None
    ) -> Optional[Occurrence]:
        return self.last_occurrences.get((kind, instance_id))

    def instance(self, kind: ActionKind, instance_id: Optional[str]) -> Optional[InstanceState]:
        return self.instance_progress.get((kind, instance_id))


@dataclass
class OptimisticMutation:
    """One reversible local change applied before the store call."""

    mutation_id: int
    key: StateKey
    local_date: date
    occurrence: Occurrence
    fp_delta: int = 0
    counts_as_boost: bool = False
    progress_delta: int = 0
    parent_completed: bool = False
    settled: bool = False


@dataclass
class _Base:
    today: date
    fuel_points: int = 0
    level: int = 1
    burn_streak: int = 0
    days_since_last_fuel_points: int = 0
    fp_earned_today: int = 0
    boosts_completed_today: int = 0
    completed_boost_ids: List[str] = field(default_factory=list)
    completed_boost_ids_this_week: List[str] = field(default_factory=list)
    last_occurrences: Dict[StateKey, Occurrence] = field(default_factory=dict)
    instances: Dict[StateKey, InstanceState] = field(default_factory=dict)


class OptimisticClientState:
    """
    Usage Example
    -------------
    >>> state = OptimisticClientState("p1", today=date(2024, 1, 1))
    >>> m = state.apply_optimistic(
    ...     (ActionKind.DAILY_BOOST, "b1"),
    ...     local_date=date(2024, 1, 1),
    ...     occurred_at=datetime(2024, 1, 1, 9, tzinfo=timezone.utc),
    ...     fp_delta=1,
    ...     counts_as_boost=True,
    ... )
    >>> state.snapshot().boosts_completed_today
    1
    >>> state.revert(m)
    >>> state.snapshot().boosts_completed_today
    0
    """

    def __init__(
        self,
        player_id: str,
        today: date,
        *,
        boost_quota: int = 3,
        reset_weekday: Weekday = Weekday.SUNDAY,
    ) -> None:
        self.player_id = player_id
        self.boost_quota = boost_quota
        self.reset_weekday = reset_weekday
        self._base = _Base(today=today)
        self._mutations: List[OptimisticMutation] = []
        self._finished: Dict[StateKey, InstanceStatus] = {}
        self._ids = itertools.count(1)
        self.resync_count = 0

    # ------------------------------------------------------------------ #
    # Authoritative updates
    # ------------------------------------------------------------------ #

    def apply_authoritative(
        self,
        player: PlayerState,
        today_stats: Optional[TodayStats] = None,
        occurrences: Optional[Mapping[StateKey, Occurrence]] = None,
        instances: Optional[Iterable[InstanceState]] = None,
        *,
        settled_before: Optional[AbstractSet[int]] = None,
    ) -> None:
        """
        Replace the base with store values.

        Settled mutations are dropped (the store already includes them);
        pending ones stay layered on the new base. When `settled_before` is
        given, only those mutations are dropped: a mutation that settled
        while the store was being read may be missing from the values.
        """
        base = self._base
        base.fuel_points = player.fuel_points
        base.level = player.level
        base.burn_streak = player.burn_streak
        base.days_since_last_fuel_points = player.days_since_last_fuel_points

        if today_stats is not None:
            base.today = today_stats.day
            base.fp_earned_today = today_stats.fp_earned_today
            base.boosts_completed_today = today_stats.boosts_completed_today
            base.completed_boost_ids = list(today_stats.completed_boost_ids)
            base.completed_boost_ids_this_week = list(today_stats.completed_boost_ids_this_week)
        if occurrences is not None:
            base.last_occurrences = dict(occurrences)
        if instances is not None:
            base.instances = {inst.state_key: inst for inst in instances}
            self._finished.clear()

        if settled_before is None:
            self._mutations = [m for m in self._mutations if not m.settled]
        else:
            self._mutations = [m for m in self._mutations if m.mutation_id not in settled_before]
        self.resync_count += 1

    def settled_ids(self) -> FrozenSet[int]:
        """Ids of the mutations the store has already answered."""
        return frozenset(m.mutation_id for m in self._mutations if m.settled)

    def upsert_instance(self, instance: InstanceState) -> None:
        """Record a store-reported instance (start, create or cancel)."""
        self._base.instances[instance.state_key] = instance
        self._finished.pop(instance.state_key, None)

    def mark_finished(self, key: StateKey, status: InstanceStatus = InstanceStatus.COMPLETED) -> None:
        """Locally flag an instance the store reported as already finished."""
        self._finished[key] = status

    def ensure_day(self, today: date) -> None:
        """Start a new local day: today's counters reset until the next resync."""
        base = self._base
        if today == base.today:
            return
        if week_start(today, self.reset_weekday) != week_start(base.today, self.reset_weekday):
            base.completed_boost_ids_this_week = []
        base.today = today
        base.fp_earned_today = 0
        base.boosts_completed_today = 0
        base.completed_boost_ids = []

    # ------------------------------------------------------------------ #
    # Optimistic mutations
    # ------------------------------------------------------------------ #

    def apply_optimistic(
        self,
        key: StateKey,
        *,
        local_date: date,
        occurred_at: datetime,
        fp_delta: int = 0,
        counts_as_boost: bool = False,
        progress_delta: int = 0,
    ) -> OptimisticMutation:
        mutation = OptimisticMutation(
            mutation_id=next(self._ids),
            key=key,
            local_date=local_date,
            occurrence=Occurrence(local_date, occurred_at),
            fp_delta=fp_delta,
            counts_as_boost=counts_as_boost,
            progress_delta=progress_delta,
        )
        self._mutations.append(mutation)
        return mutation

    def revert(self, mutation: OptimisticMutation) -> None:
        """Remove the mutation; a no-op if it is already gone."""
        self._mutations = [m for m in self._mutations if m.mutation_id != mutation.mutation_id]

    def confirm(
        self,
        mutation: OptimisticMutation,
        *,
        reward: int,
        parent_completed: bool = False,
        occurrence: Optional[Occurrence] = None,
    ) -> None:
        """Replace the optimistic guess with the store's outcome."""
        mutation.fp_delta = reward
        mutation.parent_completed = parent_completed
        if occurrence is not None:
            mutation.occurrence = occurrence
        mutation.settled = True

    def settle(self, mutation: OptimisticMutation) -> None:
        """Keep the optimistic change as-is (the window was already recorded)."""
        mutation.settled = True

    @property
    def pending_count(self) -> int:
        return sum(1 for m in self._mutations if not m.settled)

    # ------------------------------------------------------------------ #
    # Views
    # ------------------------------------------------------------------ #

    def snapshot(self) -> LocalStateSnapshot:
        base = self._base
        today = base.today

        fuel_points = base.fuel_points
        fp_today = base.fp_earned_today
        boosts_today = base.boosts_completed_today
        boost_ids = list(base.completed_boost_ids)
        this_week = week_start(today, self.reset_weekday)
        weeks_boost_ids = list(base.completed_boost_ids_this_week)
        days_since = base.days_since_last_fuel_points
        occurrences = dict(base.last_occurrences)
        progress: Dict[StateKey, int] = {}
        completed: Dict[StateKey, bool] = {}

        for m in self._mutations:
            fuel_points += m.fp_delta
            occurrences[m.key] = m.occurrence
            if m.progress_delta:
                progress[m.key] = progress.get(m.key, 0) + m.progress_delta
            if m.parent_completed:
                completed[m.key] = True
            if (
                m.counts_as_boost
                and m.key[1]
                and this_week <= m.local_date <= today
                and m.key[1] not in weeks_boost_ids
            ):
                weeks_boost_ids.append(m.key[1])
            if m.local_date != today:
                continue
            fp_today += m.fp_delta
            if m.fp_delta > 0:
                days_since = 0
            if m.counts_as_boost:
                boosts_today += 1
                if m.key[1] and m.key[1] not in boost_ids:
                    boost_ids.append(m.key[1])

        instances: Dict[StateKey, InstanceState] = {}
        for key, inst in base.instances.items():
            status = inst.status
            count = min(inst.progress_count + progress.get(key, 0), inst.required_count)
            if completed.get(key):
                status = InstanceStatus.COMPLETED
            if key in self._finished:
                status = self._finished[key]
            last = occurrences.get(key)
            instances[key] = dataclasses.replace(
                inst,
                status=status,
                progress_count=count,
                last_completed_on=last.local_date if last else inst.last_completed_on,
                last_completed_at=last.occurred_at if last else inst.last_completed_at,
            )

        return LocalStateSnapshot(
            player_id=self.player_id,
            today=today,
            fuel_points=fuel_points,
            level=base.level,
            burn_streak=base.burn_streak,
            next_level_threshold=level_threshold(base.level),
            days_since_last_fuel_points=days_since,
            fp_earned_today=fp_today,
            boosts_completed_today=boosts_today,
            boosts_remaining_today=max(0, self.boost_quota - boosts_today),
            completed_boost_ids=tuple(boost_ids),
            completed_boost_ids_this_week=tuple(weeks_boost_ids),
            week_start=this_week,
            days_until_boost_reset=weekly_fixed_day_reset(today, self.reset_weekday),
            last_occurrences=MappingProxyType(occurrences),
            instance_progress=MappingProxyType(instances),
            pending_attempts=self.pending_count,
        )
