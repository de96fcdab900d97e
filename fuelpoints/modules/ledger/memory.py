"""
In-process authoritative store.

Purpose
-------
Holds players, instances and the completion ledger in dictionaries behind a
per-player `asyncio.Lock`. Used by tests, demos and single-process
deployments; it enforces exactly the same rules as the SQL store.

Testing Hooks
-------------
- `latency` delays every call, so concurrent attempts can interleave
- `fail_next(exc)` makes the next call raise `exc` (e.g. a transient error)
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict, deque
from datetime import date
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Type, Union

from fuelpoints.core.clock import Clock, SystemClock
from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.logging import get_logger
from fuelpoints.domain.models.actions import (
    ActionKind,
    CompletionRecord,
    InstanceState,
    InstanceStatus,
    Occurrence,
    StateKey,
    instance_key,
)
from fuelpoints.domain.models.challenge import ChallengeInstance, CustomChallengeInstance
from fuelpoints.domain.models.player import LevelUpResult, Player, PlayerState, RolloverResult
from fuelpoints.domain.models.quest import QuestInstance
from fuelpoints.modules.ledger.interface import CompletionStore, SubmissionResult, TodayStats
from fuelpoints.modules.ledger.rules import CompletionRules, StreamHistory
from fuelpoints.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
)

logger = get_logger(__name__)

Instance = Union[ChallengeInstance, CustomChallengeInstance, QuestInstance]


class InMemoryCompletionStore(CompletionStore):
    def __init__(
        self,
        clock: Optional[Clock] = None,
        config: Type[ConfigManager] = ConfigManager,
        *,
        latency: float = 0.0,
    ) -> None:
        self.clock = clock or SystemClock()
        self.rules = CompletionRules(config)
        self.latency = latency

        self._players: Dict[str, Player] = {}
        self._instances: Dict[str, Instance] = {}
        self._records: List[CompletionRecord] = []
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._faults: Deque[BaseException] = deque()

        self.submit_calls = 0

    # ------------------------------------------------------------------ #
    # Testing hooks
    # ------------------------------------------------------------------ #

    def fail_next(self, exc: BaseException) -> None:
        self._faults.append(exc)

    async def _enter(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._faults:
            raise self._faults.popleft()

    # ------------------------------------------------------------------ #
    # Completions
    # ------------------------------------------------------------------ #

    async def submit_completion(
        self,
        player_id: str,
        kind: ActionKind,
        instance_id: Optional[str],
        payload: Mapping[str, Any],
    ) -> SubmissionResult:
        self.submit_calls += 1
        kind = ActionKind(kind)
        async with self._locks[player_id]:
            await self._enter()
            player = self._require_player(player_id)
            now = self.clock.now()
            local_date = self.rules.resolve_local_date(payload, now)

            instance = None
            if kind.has_parent_instance:
                instance = self._require_instance(player_id, kind, instance_id)

            evaluation = self.rules.evaluate(
                player=player,
                kind=kind,
                instance_id=instance_id,
                instance=instance,
                payload=payload,
                local_date=local_date,
                now=now,
                history=self._history(player_id, kind, instance_id, local_date),
            )
            outcome = evaluation.outcome

            player.credit(outcome.reward, local_date)
            record = CompletionRecord(
                record_id=uuid.uuid4().hex,
                player_id=player_id,
                kind=kind,
                instance_id=instance_id,
                occurred_on=local_date,
                occurred_at=now,
                window_key=evaluation.window_key,
                fp_earned=outcome.reward,
                parent_completed=outcome.parent_completed,
                payload=evaluation.record_payload,
            )
            self._records.append(record)

        logger.info(
            "Completion recorded",
            extra={
                "player_id": player_id,
                "action_kind": kind.value,
                "instance_id": instance_id,
                "window_key": evaluation.window_key,
                "fp_earned": outcome.reward,
                "parent_completed": outcome.parent_completed,
            },
        )
        return SubmissionResult(
            accepted=True,
            reward=outcome.reward,
            parent_completed=outcome.parent_completed,
            record=record,
            player=player.to_state(),
        )

    def _history(
        self, player_id: str, kind: ActionKind, instance_id: Optional[str], local_date: date
    ) -> StreamHistory:
        stream = [
            r
            for r in self._records
            if r.player_id == player_id
            and r.kind is kind
            and instance_key(r.instance_id) == instance_key(instance_id)
        ]
        week_start = self.rules.boost_week_start(local_date)
        boosts = [
            r
            for r in self._records
            if r.player_id == player_id
            and r.kind is ActionKind.DAILY_BOOST
            and week_start <= r.occurred_on <= local_date
        ]
        return StreamHistory(
            window_keys=frozenset(r.window_key for r in stream),
            count=len(stream),
            last_at=stream[-1].occurred_at if stream else None,
            boosts_today=sum(1 for r in boosts if r.occurred_on == local_date),
            boost_ids_this_week=frozenset(r.instance_id for r in boosts if r.instance_id),
        )

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def _require_player(self, player_id: str) -> Player:
        player = self._players.get(player_id)
        if player is None:
            raise NotFoundError("Player", player_id)
        return player

    def _require_instance(
        self, player_id: str, kind: ActionKind, instance_id: Optional[str]
    ) -> Instance:
        instance = self._instances.get(instance_id or "")
        if instance is None or instance.KIND is not kind or instance.player_id != player_id:
            raise NotFoundError(kind.value, instance_id)
        return instance

    async def get_player_state(self, player_id: str) -> PlayerState:
        await self._enter()
        return self._require_player(player_id).to_state()

    async def get_instance_state(self, kind: ActionKind, instance_id: str) -> InstanceState:
        await self._enter()
        instance = self._instances.get(instance_id)
        if instance is None or instance.KIND is not ActionKind(kind):
            raise NotFoundError(ActionKind(kind).value, instance_id)
        return instance.to_state()

    async def list_instances(
        self, player_id: str, *, active_only: bool = True
    ) -> List[InstanceState]:
        await self._enter()
        return [
            instance.to_state()
            for instance in self._instances.values()
            if instance.player_id == player_id
            and (not active_only or instance.status is InstanceStatus.ACTIVE)
        ]

    async def get_today_stats(self, player_id: str, today: date) -> TodayStats:
        await self._enter()
        week_start = self.rules.boost_week_start(today)
        todays = [r for r in self._records if r.player_id == player_id and r.occurred_on == today]
        boosts = [r for r in todays if r.kind is ActionKind.DAILY_BOOST]
        weeks_boosts = [
            r
            for r in self._records
            if r.player_id == player_id
            and r.kind is ActionKind.DAILY_BOOST
            and week_start <= r.occurred_on <= today
        ]
        return TodayStats(
            day=today,
            fp_earned_today=sum(r.fp_earned for r in todays),
            boosts_completed_today=len(boosts),
            completed_boost_ids=tuple(r.instance_id for r in boosts if r.instance_id),
            completed_boost_ids_this_week=tuple(
                dict.fromkeys(r.instance_id for r in weeks_boosts if r.instance_id)
            ),
        )

    async def get_last_occurrences(self, player_id: str) -> Dict[StateKey, Occurrence]:
        await self._enter()
        occurrences: Dict[StateKey, Occurrence] = {}
        for record in self._records:
            if record.player_id == player_id:
                occurrences[record.state_key] = Occurrence(record.occurred_on, record.occurred_at)
        return occurrences

    async def list_records(self, player_id: str) -> List[CompletionRecord]:
        await self._enter()
        return [r for r in self._records if r.player_id == player_id]

    # ------------------------------------------------------------------ #
    # Progression
    # ------------------------------------------------------------------ #

    async def ensure_player(self, player_id: str) -> PlayerState:
        async with self._locks[player_id]:
            await self._enter()
            player = self._players.get(player_id)
            if player is None:
                player = self._players[player_id] = Player(player_id)
                logger.info("Player created", extra={"player_id": player_id})
            return player.to_state()

    def seed_player(self, player: Player) -> None:
        """Install a player with preset counters."""
        self._players[player.id] = player

    async def trigger_level_up_if_eligible(
        self, player_id: str, current_fp: int
    ) -> LevelUpResult:
        async with self._locks[player_id]:
            await self._enter()
            player = self._require_player(player_id)
            result = player.recompute_level()
        if result.level_changed:
            logger.info(
                "Player leveled up",
                extra={
                    "player_id": player_id,
                    "old_level": result.previous_level,
                    "new_level": result.new_level,
                    "reported_fp": current_fp,
                },
            )
        return result

    async def apply_day_rollover(self, player_id: str, day: date) -> RolloverResult:
        async with self._locks[player_id]:
            await self._enter()
            result = self._require_player(player_id).roll_over(day)
        if result.applied:
            logger.debug(
                "Day rolled over",
                extra={
                    "player_id": player_id,
                    "day": day.isoformat(),
                    "burn_streak": result.burn_streak,
                    "streak_bonus": result.streak_bonus,
                },
            )
        return result

    # ------------------------------------------------------------------ #
    # Instance lifecycle
    # ------------------------------------------------------------------ #

    async def start_challenge(
        self,
        player_id: str,
        challenge_id: str,
        *,
        verifications_required: Optional[int] = None,
        daily_reward: Optional[int] = None,
        completion_bonus: Optional[int] = None,
    ) -> InstanceState:
        async with self._locks[player_id]:
            await self._enter()
            self._require_player(player_id)
            for existing in self._instances.values():
                if (
                    isinstance(existing, ChallengeInstance)
                    and existing.KIND is ActionKind.STANDARD_CHALLENGE_DAILY
                    and existing.player_id == player_id
                    and existing.challenge_id == challenge_id
                    and existing.status is InstanceStatus.ACTIVE
                ):
                    raise InvalidOperationError(
                        "start_challenge", f"challenge {challenge_id} is already active"
                    )
            terms = self.rules.challenge_terms(
                challenge_id, verifications_required, daily_reward, completion_bonus
            )
            instance = ChallengeInstance(
                instance_id=uuid.uuid4().hex,
                player_id=player_id,
                challenge_id=challenge_id,
                verifications_required=terms.verifications_required,
                daily_reward=terms.daily_reward,
                completion_bonus=terms.completion_bonus,
                started_at=self.clock.now(),
            )
            self._instances[instance.id] = instance
        logger.info(
            "Challenge started",
            extra={"player_id": player_id, "instance_id": instance.id, "challenge_id": challenge_id},
        )
        return instance.to_state()

    async def create_custom_challenge(
        self,
        player_id: str,
        name: str,
        actions: Sequence[Any],
        daily_minimum: int,
    ) -> InstanceState:
        terms = self.rules.custom_challenge_terms(name, actions, daily_minimum)
        async with self._locks[player_id]:
            await self._enter()
            self._require_player(player_id)
            instance = CustomChallengeInstance(
                instance_id=uuid.uuid4().hex,
                player_id=player_id,
                name=terms.name,
                actions=terms.actions,
                daily_minimum=terms.daily_minimum,
                target_completions=terms.target_completions,
                fp_daily_reward=terms.fp_daily_reward,
                fp_completion_reward=terms.fp_completion_reward,
                started_at=self.clock.now(),
            )
            self._instances[instance.id] = instance
        logger.info(
            "Custom challenge created",
            extra={"player_id": player_id, "instance_id": instance.id, "actions": len(terms.actions)},
        )
        return instance.to_state()

    async def start_quest(self, player_id: str, quest_id: str) -> InstanceState:
        terms = self.rules.quest_terms()
        async with self._locks[player_id]:
            await self._enter()
            self._require_player(player_id)
            instance = QuestInstance(
                instance_id=uuid.uuid4().hex,
                player_id=player_id,
                quest_id=quest_id,
                weekly_reward=terms.weekly_reward,
                completion_reward=terms.completion_reward,
                total_weeks=terms.total_weeks,
                started_at=self.clock.now(),
            )
            self._instances[instance.id] = instance
        logger.info(
            "Quest started",
            extra={"player_id": player_id, "instance_id": instance.id, "quest_id": quest_id},
        )
        return instance.to_state()

    async def cancel_instance(
        self, player_id: str, kind: ActionKind, instance_id: str
    ) -> InstanceState:
        async with self._locks[player_id]:
            await self._enter()
            instance = self._require_instance(player_id, ActionKind(kind), instance_id)
            instance.cancel(self.clock.now())
        logger.info(
            "Instance cancelled",
            extra={"player_id": player_id, "action_kind": ActionKind(kind).value, "instance_id": instance_id},
        )
        return instance.to_state()
