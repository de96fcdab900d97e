"""
SQL-backed authoritative store.

Purpose
-------
Persists players, instances and completion records through SQLAlchemy's
async ORM (PostgreSQL in production, SQLite via aiosqlite in tests).

Design Notes
------------
- Every write runs in one `DatabaseService.get_transaction()` and locks the
  player row FOR UPDATE first, so the record insert, the instance transition
  and the FP credit commit or roll back together.
- The unique constraint on ``(player, kind, instance, window)`` backs up the
  in-transaction window check; an IntegrityError on insert is reported as a
  `ConflictError` like any other occupied window.
- Connectivity, timeout and driver failures surface as `TransientStoreError`.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Type, Union

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from fuelpoints.core.clock import Clock, SystemClock
from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.database import Base, DatabaseService
from fuelpoints.core.exceptions import ConflictError, TransientStoreError
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
from fuelpoints.domain.models.challenge import (
    ChallengeInstance,
    CustomAction,
    CustomChallengeInstance,
)
from fuelpoints.domain.models.player import LevelUpResult, Player, PlayerState, RolloverResult
from fuelpoints.domain.models.quest import QuestInstance, WeeklyProgress
from fuelpoints.modules.ledger.interface import CompletionStore, SubmissionResult, TodayStats
from fuelpoints.modules.ledger.models import CompletionRecordRow, InstanceRow, PlayerRow
from fuelpoints.modules.ledger.rules import CompletionRules, StreamHistory
from fuelpoints.modules.shared.exceptions import InvalidOperationError, NotFoundError

logger = get_logger(__name__)

Instance = Union[ChallengeInstance, CustomChallengeInstance, QuestInstance]


# ============================================================================
# Row <-> domain mapping
# ============================================================================


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored instants are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return value.astimezone(timezone.utc) if value is not None else None


def _player_from_row(row: PlayerRow) -> Player:
    return Player(
        row.player_id,
        fuel_points=row.fuel_points,
        level=row.level,
        burn_streak=row.burn_streak,
        days_since_last_fuel_points=row.days_since_last_fuel_points,
        last_fuel_points_on=row.last_fuel_points_on,
        last_rollover_on=row.last_rollover_on,
    )


def _write_player(row: PlayerRow, player: Player) -> None:
    row.fuel_points = player.fuel_points
    row.level = player.level
    row.burn_streak = player.burn_streak
    row.days_since_last_fuel_points = player.days_since_last_fuel_points
    row.last_fuel_points_on = player.last_fuel_points_on
    row.last_rollover_on = player.last_rollover_on


def _week_to_json(entry: WeeklyProgress) -> Dict[str, Any]:
    return {
        "week_number": entry.week_number,
        "completion_date": entry.completion_date.isoformat(),
        "completed_at": _utc(entry.completed_at).isoformat(),
        "fp_earned": entry.fp_earned,
        "selected_action": entry.selected_action,
    }


def _week_from_json(data: Mapping[str, Any]) -> WeeklyProgress:
    return WeeklyProgress(
        week_number=int(data["week_number"]),
        completion_date=date.fromisoformat(data["completion_date"]),
        completed_at=_aware(datetime.fromisoformat(data["completed_at"])),
        fp_earned=int(data["fp_earned"]),
        selected_action=data.get("selected_action"),
    )


def _instance_from_row(row: InstanceRow) -> Instance:
    kind = ActionKind(row.kind)
    status = InstanceStatus(row.status)
    if kind is ActionKind.QUEST_WEEKLY_ACTION:
        return QuestInstance(
            instance_id=row.instance_id,
            player_id=row.player_id,
            quest_id=row.parent_id,
            weekly_reward=row.daily_reward,
            completion_reward=row.completion_reward,
            total_weeks=row.required_count,
            status=status,
            weekly_progress=[_week_from_json(w) for w in row.weekly_progress or ()],
            started_at=_aware(row.started_at),
            finished_at=_aware(row.finished_at),
        )
    if kind is ActionKind.CUSTOM_CHALLENGE_DAILY:
        return CustomChallengeInstance(
            instance_id=row.instance_id,
            player_id=row.player_id,
            name=row.name or "",
            actions=[CustomAction(a["text"], a.get("category", "Mindset")) for a in row.actions],
            daily_minimum=row.daily_minimum or 1,
            target_completions=row.required_count,
            fp_daily_reward=row.daily_reward,
            fp_completion_reward=row.completion_reward,
            status=status,
            completion_count=row.progress_count,
            started_at=_aware(row.started_at),
            finished_at=_aware(row.finished_at),
            last_completed_on=row.last_completed_on,
            last_completed_at=_aware(row.last_completed_at),
        )
    return ChallengeInstance(
        instance_id=row.instance_id,
        player_id=row.player_id,
        challenge_id=row.parent_id,
        verifications_required=row.required_count,
        daily_reward=row.daily_reward,
        completion_bonus=row.completion_reward,
        status=status,
        verification_count=row.progress_count,
        started_at=_aware(row.started_at),
        finished_at=_aware(row.finished_at),
        last_completed_on=row.last_completed_on,
        last_completed_at=_aware(row.last_completed_at),
    )


def _write_instance(row: InstanceRow, instance: Instance) -> None:
    state = instance.to_state()
    row.status = state.status.value
    row.progress_count = state.progress_count
    row.last_completed_on = state.last_completed_on
    row.last_completed_at = _utc(state.last_completed_at)
    row.finished_at = _utc(instance.finished_at)
    if isinstance(instance, QuestInstance):
        row.weekly_progress = [_week_to_json(w) for w in instance.weekly_progress]


def _new_instance_row(instance: Instance) -> InstanceRow:
    state = instance.to_state()
    row = InstanceRow(
        instance_id=state.instance_id,
        player_id=state.player_id,
        kind=state.kind.value,
        parent_id=state.parent_id,
        required_count=state.required_count,
        daily_reward=state.daily_reward,
        completion_reward=state.completion_reward,
        name=state.name,
        daily_minimum=state.daily_minimum,
        actions=[],
        weekly_progress=[],
        started_at=_utc(instance.started_at),
    )
    if isinstance(instance, CustomChallengeInstance):
        row.actions = [{"text": a.text, "category": a.category} for a in instance.actions]
    _write_instance(row, instance)
    return row


def _record_from_row(row: CompletionRecordRow) -> CompletionRecord:
    return CompletionRecord(
        record_id=row.record_id,
        player_id=row.player_id,
        kind=ActionKind(row.kind),
        instance_id=row.instance_key or None,
        occurred_on=row.occurred_on,
        occurred_at=_aware(row.occurred_at),
        window_key=row.window_key,
        fp_earned=row.fp_earned,
        parent_completed=row.parent_completed,
        payload=dict(row.payload or {}),
    )


# ============================================================================
# Store
# ============================================================================


class SqlCompletionStore(CompletionStore):
    """
    Usage:
        >>> await DatabaseService.initialize("sqlite+aiosqlite:///:memory:")
        >>> store = SqlCompletionStore()
        >>> await store.create_schema()
        >>> await store.ensure_player("p1")
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        config: Type[ConfigManager] = ConfigManager,
        database: Type[DatabaseService] = DatabaseService,
    ) -> None:
        self.clock = clock or SystemClock()
        self.rules = CompletionRules(config)
        self.database = database
        # In-process serialization; the row lock covers other processes
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_schema(self) -> None:
        await self.database.create_all(Base.metadata)

    @asynccontextmanager
    async def _store_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError, OSError, asyncio.TimeoutError) as e:
            logger.warning(
                f"Store operation failed: {operation}",
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise TransientStoreError(operation, e) from e

    # ------------------------------------------------------------------ #
    # Row access
    # ------------------------------------------------------------------ #

    @staticmethod
    async def _lock_player(session: AsyncSession, player_id: str) -> PlayerRow:
        row = (
            await session.execute(
                select(PlayerRow).where(PlayerRow.player_id == player_id).with_for_update()
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Player", player_id)
        return row

    @staticmethod
    async def _lock_instance(
        session: AsyncSession, player_id: str, kind: ActionKind, instance_id: Optional[str]
    ) -> InstanceRow:
        row = (
            await session.execute(
                select(InstanceRow)
                .where(
                    InstanceRow.instance_id == (instance_id or ""),
                    InstanceRow.player_id == player_id,
                    InstanceRow.kind == kind.value,
                )
                .with_for_update()
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(kind.value, instance_id)
        return row

    @staticmethod
    async def _history(
        session: AsyncSession,
        player_id: str,
        kind: ActionKind,
        instance_id: Optional[str],
        local_date: date,
        week_start: date,
    ) -> StreamHistory:
        stream = (
            await session.execute(
                select(CompletionRecordRow.window_key, CompletionRecordRow.occurred_at)
                .where(
                    CompletionRecordRow.player_id == player_id,
                    CompletionRecordRow.kind == kind.value,
                    CompletionRecordRow.instance_key == instance_key(instance_id),
                )
                .order_by(CompletionRecordRow.id)
            )
        ).all()
        boosts = (
            await session.execute(
                select(CompletionRecordRow.instance_key, CompletionRecordRow.occurred_on).where(
                    CompletionRecordRow.player_id == player_id,
                    CompletionRecordRow.kind == ActionKind.DAILY_BOOST.value,
                    CompletionRecordRow.occurred_on >= week_start,
                    CompletionRecordRow.occurred_on <= local_date,
                )
            )
        ).all()
        return StreamHistory(
            window_keys=frozenset(window_key for window_key, _ in stream),
            count=len(stream),
            last_at=_aware(stream[-1][1]) if stream else None,
            boosts_today=sum(1 for _, on in boosts if on == local_date),
            boost_ids_this_week=frozenset(key for key, _ in boosts if key),
        )

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
        kind = ActionKind(kind)
        async with self._store_errors("submit_completion"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                player_row = await self._lock_player(session, player_id)
                player = _player_from_row(player_row)
                now = self.clock.now()
                local_date = self.rules.resolve_local_date(payload, now)

                instance_row = None
                instance = None
                if kind.has_parent_instance:
                    instance_row = await self._lock_instance(session, player_id, kind, instance_id)
                    instance = _instance_from_row(instance_row)

                evaluation = self.rules.evaluate(
                    player=player,
                    kind=kind,
                    instance_id=instance_id,
                    instance=instance,
                    payload=payload,
                    local_date=local_date,
                    now=now,
                    history=await self._history(
                        session,
                        player_id,
                        kind,
                        instance_id,
                        local_date,
                        self.rules.boost_week_start(local_date),
                    ),
                )
                outcome = evaluation.outcome

                player.credit(outcome.reward, local_date)
                _write_player(player_row, player)
                if instance_row is not None and instance is not None:
                    _write_instance(instance_row, instance)

                record_row = CompletionRecordRow(
                    record_id=uuid.uuid4().hex,
                    player_id=player_id,
                    kind=kind.value,
                    instance_key=instance_key(instance_id),
                    window_key=evaluation.window_key,
                    occurred_on=local_date,
                    occurred_at=_utc(now),
                    fp_earned=outcome.reward,
                    parent_completed=outcome.parent_completed,
                    payload=evaluation.record_payload,
                )
                session.add(record_row)
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise ConflictError(kind.value, evaluation.window_key, instance_id) from e

                record = _record_from_row(record_row)

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

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_player_state(self, player_id: str) -> PlayerState:
        async with self._store_errors("get_player_state"):
            async with self.database.get_session() as session:
                row = await session.get(PlayerRow, player_id)
                if row is None:
                    raise NotFoundError("Player", player_id)
                return _player_from_row(row).to_state()

    async def get_instance_state(self, kind: ActionKind, instance_id: str) -> InstanceState:
        kind = ActionKind(kind)
        async with self._store_errors("get_instance_state"):
            async with self.database.get_session() as session:
                row = await session.get(InstanceRow, instance_id)
                if row is None or row.kind != kind.value:
                    raise NotFoundError(kind.value, instance_id)
                return _instance_from_row(row).to_state()

    async def list_instances(
        self, player_id: str, *, active_only: bool = True
    ) -> List[InstanceState]:
        query = select(InstanceRow).where(InstanceRow.player_id == player_id)
        if active_only:
            query = query.where(InstanceRow.status == InstanceStatus.ACTIVE.value)
        async with self._store_errors("list_instances"):
            async with self.database.get_session() as session:
                rows = (await session.execute(query.order_by(InstanceRow.created_at))).scalars()
                return [_instance_from_row(row).to_state() for row in rows]

    async def get_today_stats(self, player_id: str, today: date) -> TodayStats:
        week_start = self.rules.boost_week_start(today)
        async with self._store_errors("get_today_stats"):
            async with self.database.get_session() as session:
                rows = (
                    await session.execute(
                        select(
                            CompletionRecordRow.kind,
                            CompletionRecordRow.instance_key,
                            CompletionRecordRow.fp_earned,
                            CompletionRecordRow.occurred_on,
                        )
                        .where(
                            CompletionRecordRow.player_id == player_id,
                            CompletionRecordRow.occurred_on >= week_start,
                            CompletionRecordRow.occurred_on <= today,
                        )
                        .order_by(CompletionRecordRow.id)
                    )
                ).all()
        todays = [row for row in rows if row.occurred_on == today]
        boost_ids = [row.instance_key for row in todays if row.kind == ActionKind.DAILY_BOOST.value]
        weeks_boost_ids = [
            row.instance_key for row in rows if row.kind == ActionKind.DAILY_BOOST.value
        ]
        return TodayStats(
            day=today,
            fp_earned_today=sum(row.fp_earned for row in todays),
            boosts_completed_today=len(boost_ids),
            completed_boost_ids=tuple(key for key in boost_ids if key),
            completed_boost_ids_this_week=tuple(dict.fromkeys(k for k in weeks_boost_ids if k)),
        )

    async def get_last_occurrences(self, player_id: str) -> Dict[StateKey, Occurrence]:
        occurrences: Dict[StateKey, Occurrence] = {}
        for record in await self.list_records(player_id):
            occurrences[record.state_key] = Occurrence(record.occurred_on, record.occurred_at)
        return occurrences

    async def list_records(self, player_id: str) -> List[CompletionRecord]:
        async with self._store_errors("list_records"):
            async with self.database.get_session() as session:
                rows = (
                    await session.execute(
                        select(CompletionRecordRow)
                        .where(CompletionRecordRow.player_id == player_id)
                        .order_by(CompletionRecordRow.id)
                    )
                ).scalars()
                return [_record_from_row(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Progression
    # ------------------------------------------------------------------ #

    async def ensure_player(self, player_id: str) -> PlayerState:
        async with self._store_errors("ensure_player"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                row = await session.get(PlayerRow, player_id)
                if row is None:
                    row = PlayerRow(
                        player_id=player_id,
                        fuel_points=0,
                        level=1,
                        burn_streak=0,
                        days_since_last_fuel_points=0,
                    )
                    session.add(row)
                    logger.info("Player created", extra={"player_id": player_id})
                return _player_from_row(row).to_state()

    async def trigger_level_up_if_eligible(
        self, player_id: str, current_fp: int
    ) -> LevelUpResult:
        async with self._store_errors("trigger_level_up"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                row = await self._lock_player(session, player_id)
                player = _player_from_row(row)
                result = player.recompute_level()
                if result.level_changed:
                    row.level = player.level

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
        async with self._store_errors("apply_day_rollover"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                row = await self._lock_player(session, player_id)
                player = _player_from_row(row)
                result = player.roll_over(day)
                if result.applied:
                    _write_player(row, player)
        return result

    # ------------------------------------------------------------------ #
    # Instance lifecycle
    # ------------------------------------------------------------------ #

    async def _insert_instance(self, player_id: str, instance: Instance) -> InstanceState:
        async with self._store_errors("create_instance"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                await self._lock_player(session, player_id)
                if isinstance(instance, ChallengeInstance) and not isinstance(
                    instance, CustomChallengeInstance
                ):
                    active = (
                        await session.execute(
                            select(func.count(InstanceRow.instance_id)).where(
                                InstanceRow.player_id == player_id,
                                InstanceRow.kind == ActionKind.STANDARD_CHALLENGE_DAILY.value,
                                InstanceRow.parent_id == instance.challenge_id,
                                InstanceRow.status == InstanceStatus.ACTIVE.value,
                            )
                        )
                    ).scalar_one()
                    if active:
                        raise InvalidOperationError(
                            "start_challenge",
                            f"challenge {instance.challenge_id} is already active",
                        )
                session.add(_new_instance_row(instance))

        state = instance.to_state()
        logger.info(
            "Instance created",
            extra={
                "player_id": player_id,
                "action_kind": state.kind.value,
                "instance_id": state.instance_id,
            },
        )
        return state

    async def start_challenge(
        self,
        player_id: str,
        challenge_id: str,
        *,
        verifications_required: Optional[int] = None,
        daily_reward: Optional[int] = None,
        completion_bonus: Optional[int] = None,
    ) -> InstanceState:
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
        return await self._insert_instance(player_id, instance)

    async def create_custom_challenge(
        self,
        player_id: str,
        name: str,
        actions: Sequence[Any],
        daily_minimum: int,
    ) -> InstanceState:
        terms = self.rules.custom_challenge_terms(name, actions, daily_minimum)
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
        return await self._insert_instance(player_id, instance)

    async def start_quest(self, player_id: str, quest_id: str) -> InstanceState:
        terms = self.rules.quest_terms()
        instance = QuestInstance(
            instance_id=uuid.uuid4().hex,
            player_id=player_id,
            quest_id=quest_id,
            weekly_reward=terms.weekly_reward,
            completion_reward=terms.completion_reward,
            total_weeks=terms.total_weeks,
            started_at=self.clock.now(),
        )
        return await self._insert_instance(player_id, instance)

    async def cancel_instance(
        self, player_id: str, kind: ActionKind, instance_id: str
    ) -> InstanceState:
        kind = ActionKind(kind)
        async with self._store_errors("cancel_instance"), self._locks[player_id]:
            async with self.database.get_transaction() as session:
                row = await self._lock_instance(session, player_id, kind, instance_id)
                instance = _instance_from_row(row)
                instance.cancel(self.clock.now())
                _write_instance(row, instance)

        logger.info(
            "Instance cancelled",
            extra={"player_id": player_id, "action_kind": kind.value, "instance_id": instance_id},
        )
        return instance.to_state()
