"""
Action completion workflow.

Purpose
-------
One generic attempt pipeline for every gated action kind:

    IDLE -> VALIDATING -> OPTIMISTICALLY_APPLIED -> SUBMITTING
         -> CONFIRMED | CONFLICT_RESOLVED | ROLLED_BACK

with two extra terminal states: REJECTED (local validation failed, nothing
mutated) and ALREADY_FINISHED (the parent instance is completed or
cancelled; the optimistic change is reverted).

Responsibilities
----------------
- Run the kind's policy checks before touching local state
- Apply and, on failure, revert exactly one optimistic mutation
- Await the store exactly once per attempt
- Absorb `ConflictError` as a zero-reward success
- Publish an `UpdateEvent` for every attempt that reached the store
- Guard each ``(kind, instance_id)`` stream against concurrent attempts

Design Notes
------------
- Nothing awaits between validation and the optimistic mutation, so two
  attempts in the same loop can never both pass validation for one stream.
- A second attempt on a stream with an outstanding attempt joins it: it
  waits for the first to finish and resolves as CONFLICT_RESOLVED with
  reward 0, or raises the first attempt's error.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Type

from fuelpoints.core.clock import Clock
from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.event.types import UpdateEvent
from fuelpoints.core.exceptions import ConflictError
from fuelpoints.core.logging import LogContext
from fuelpoints.domain.models.actions import ActionKind, Occurrence, StateKey
from fuelpoints.modules.client_state.state import OptimisticClientState
from fuelpoints.modules.completion.policies import ActionPolicy, build_policies
from fuelpoints.modules.ledger.interface import CompletionStore, SubmissionResult
from fuelpoints.modules.shared.base_service import BaseService
from fuelpoints.modules.shared.exceptions import InvariantViolationError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from fuelpoints.core.event.bus import UpdateEventBus


class AttemptState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    OPTIMISTICALLY_APPLIED = "optimistically_applied"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    CONFLICT_RESOLVED = "conflict_resolved"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    ALREADY_FINISHED = "already_finished"


@dataclass(frozen=True)
class AttemptResult:
    reward: int
    parent_completed: bool
    outcome: AttemptState
    transitions: Tuple[AttemptState, ...] = ()


@dataclass
class _InFlight:
    done: asyncio.Event = field(default_factory=asyncio.Event)
    error: Optional[BaseException] = None


class _Attempt:
    """Transition log for one attempt."""

    def __init__(self) -> None:
        self.state = AttemptState.IDLE
        self.history: List[AttemptState] = [AttemptState.IDLE]

    def to(self, state: AttemptState) -> None:
        self.state = state
        self.history.append(state)

    def result(self, reward: int, parent_completed: bool = False) -> AttemptResult:
        return AttemptResult(
            reward=reward,
            parent_completed=parent_completed,
            outcome=self.state,
            transitions=tuple(self.history),
        )


class ActionCompletionWorkflow(BaseService):
    """
    Drives completion attempts for one player session.

    Args:
        player_id: Player whose attempts this workflow submits
        store: Authoritative completion store
        state: The session's optimistic client state
        clock: Source of "now" and the local date
        config_manager: Configuration manager
        event_bus: Bus that receives one UpdateEvent per submitted attempt
        logger: Structured logger instance
        policies: Per-kind policies (default: build_policies(config_manager))
    """

    def __init__(
        self,
        player_id: str,
        store: CompletionStore,
        state: OptimisticClientState,
        clock: Clock,
        config_manager: Type[ConfigManager],
        event_bus: UpdateEventBus,
        logger: Logger,
        policies: Optional[Mapping[ActionKind, ActionPolicy]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.player_id = player_id
        self.store = store
        self.state = state
        self.clock = clock
        self.policies: Dict[ActionKind, ActionPolicy] = dict(
            policies or build_policies(config_manager)
        )
        self._in_flight: Dict[StateKey, _InFlight] = {}

    def is_in_flight(self, kind: ActionKind, instance_id: Optional[str] = None) -> bool:
        return (ActionKind(kind), instance_id) in self._in_flight

    async def attempt(
        self,
        kind: ActionKind,
        instance_id: Optional[str] = None,
        selection: Any = None,
    ) -> AttemptResult:
        """
        Run one completion attempt.

        Returns:
            AttemptResult with the authoritative reward (0 on conflict)

        Raises:
            ValidationError: Local checks failed; nothing was mutated
            InvariantViolationError: The parent instance is already finished
            TransientStoreError: The store failed; the optimistic change was reverted
        """
        kind = ActionKind(kind)
        if kind is ActionKind.HEALTH_REASSESSMENT:
            instance_id = None
        key: StateKey = (kind, instance_id)

        joined = self._in_flight.get(key)
        if joined is not None:
            return await self._join(key, joined)

        async with LogContext(
            player_id=self.player_id,
            action_kind=kind.value,
            instance_id=instance_id,
            operation="attempt_completion",
        ):
            return await self._run(kind, instance_id, key, selection)

    async def _join(self, key: StateKey, in_flight: _InFlight) -> AttemptResult:
        self.log.debug(
            "Joining outstanding attempt",
            extra={"action_kind": key[0].value, "instance_id": key[1]},
        )
        await in_flight.done.wait()
        if in_flight.error is not None:
            raise in_flight.error
        attempt = _Attempt()
        attempt.to(AttemptState.CONFLICT_RESOLVED)
        return attempt.result(reward=0)

    async def _run(
        self,
        kind: ActionKind,
        instance_id: Optional[str],
        key: StateKey,
        selection: Any,
    ) -> AttemptResult:
        attempt = _Attempt()
        policy = self.policies[kind]

        # ---- validating ---------------------------------------------------
        attempt.to(AttemptState.VALIDATING)
        now = self.clock.now()
        today = self.clock.today()
        self.state.ensure_day(today)
        snapshot = self.state.snapshot()
        try:
            policy.validate(snapshot, instance_id, selection, now)
            payload = policy.build_payload(selection, today)
            expected = policy.expected_reward(snapshot, instance_id, selection)
        except InvariantViolationError:
            attempt.to(AttemptState.ALREADY_FINISHED)
            self.log.info("Attempt on finished instance", extra={"transitions": attempt.history})
            raise
        except ValidationError as e:
            attempt.to(AttemptState.REJECTED)
            self.log.debug(
                "Attempt rejected locally",
                extra={"field": e.field, "reason": e.validation_message},
            )
            raise

        # ---- optimistic ---------------------------------------------------
        in_flight = self._in_flight[key] = _InFlight()
        mutation = self.state.apply_optimistic(
            key,
            local_date=today,
            occurred_at=now,
            fp_delta=expected,
            counts_as_boost=kind is ActionKind.DAILY_BOOST,
            progress_delta=1 if kind.has_parent_instance else 0,
        )
        attempt.to(AttemptState.OPTIMISTICALLY_APPLIED)

        # ---- submitting ---------------------------------------------------
        attempt.to(AttemptState.SUBMITTING)
        try:
            result: SubmissionResult = await self.store.submit_completion(
                self.player_id, kind, instance_id, payload
            )
        except ConflictError as e:
            self.state.settle(mutation)
            attempt.to(AttemptState.CONFLICT_RESOLVED)
            self.log.info(
                "Completion already recorded, keeping local state",
                extra={"window_key": e.window_key},
            )
            self._publish(kind, instance_id, 0, conflict=True)
            return attempt.result(reward=0)
        except InvariantViolationError as e:
            self.state.revert(mutation)
            if kind.has_parent_instance:
                self.state.mark_finished(key)
            attempt.to(AttemptState.ALREADY_FINISHED)
            in_flight.error = e
            self.log.warning(
                "Completion rejected: already finished",
                extra={"error_code": e.error_code, "details": e.details},
            )
            raise
        except Exception as e:
            self.state.revert(mutation)
            attempt.to(AttemptState.ROLLED_BACK)
            in_flight.error = e
            self.log_error("submit_completion", e, transitions=attempt.history)
            raise
        finally:
            self._in_flight.pop(key, None)
            in_flight.done.set()

        if not result.accepted:
            self.state.settle(mutation)
            attempt.to(AttemptState.CONFLICT_RESOLVED)
            self._publish(kind, instance_id, 0, conflict=True)
            return attempt.result(reward=0)

        record = result.record
        self.state.confirm(
            mutation,
            reward=result.reward,
            parent_completed=result.parent_completed,
            occurrence=Occurrence(record.occurred_on, record.occurred_at) if record else None,
        )
        attempt.to(AttemptState.CONFIRMED)
        self.log_operation(
            "completion_confirmed",
            fp_earned=result.reward,
            parent_completed=result.parent_completed,
        )
        self._publish(kind, instance_id, result.reward, parent_completed=result.parent_completed)
        return attempt.result(reward=result.reward, parent_completed=result.parent_completed)

    def _publish(
        self,
        kind: ActionKind,
        instance_id: Optional[str],
        fp_earned: int,
        *,
        parent_completed: bool = False,
        conflict: bool = False,
    ) -> None:
        self.emit_event(
            UpdateEvent(
                fp_earned=fp_earned,
                kind=kind.value,
                instance_id=instance_id,
                parent_completed=parent_completed,
                conflict=conflict,
                source="completion",
                occurred_at=self.clock.now(),
            )
        )
