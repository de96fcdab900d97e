"""
Per-kind completion policies.

Each `ActionPolicy` answers three questions for the generic workflow:

- may this attempt proceed? (`validate`, local window and selection checks)
- what does the player see before the store answers? (`expected_reward`)
- what does the store receive? (`build_payload`)

The store re-checks everything; these checks only keep obviously invalid
attempts from leaving the client.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Sequence, Type

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.domain.models.actions import ActionKind, InstanceState
from fuelpoints.domain.models.health import HealthAssessmentInput, HealthBounds
from fuelpoints.modules.client_state.state import LocalStateSnapshot
from fuelpoints.modules.ledger.rules import CompletionRules
from fuelpoints.modules.shared.exceptions import (
    InvariantViolationError,
    ValidationError,
    WindowClosedError,
)
from fuelpoints.modules.shared.formulas import health_assessment_bonus, level_threshold
from fuelpoints.modules.shared.windows import daily_local_window, rolling_window


class ActionPolicy(ABC):
    kind: ActionKind

    def __init__(self, config: Type[ConfigManager] = ConfigManager) -> None:
        self._config = config

    @abstractmethod
    def validate(
        self,
        snapshot: LocalStateSnapshot,
        instance_id: Optional[str],
        selection: Any,
        now: datetime,
    ) -> None:
        """
        Raises
        ------
        ValidationError
            Window closed, selection malformed or too small.
        InvariantViolationError
            The local mirror already shows the instance as finished.
        """

    @abstractmethod
    def expected_reward(
        self, snapshot: LocalStateSnapshot, instance_id: Optional[str], selection: Any
    ) -> int:
        ...

    @abstractmethod
    def build_payload(self, selection: Any, local_date: date) -> Dict[str, Any]:
        ...

    # ------------------------------------------------------------------ #
    # Shared checks
    # ------------------------------------------------------------------ #

    def _check_daily(self, snapshot: LocalStateSnapshot, instance_id: Optional[str]) -> None:
        last = snapshot.last_occurrence(self.kind, instance_id)
        decision = daily_local_window(last.local_date if last else None, snapshot.today)
        if not decision.allowed:
            raise WindowClosedError(self.kind.value, decision.days_remaining)

    def _check_rolling(
        self,
        snapshot: LocalStateSnapshot,
        instance_id: Optional[str],
        now: datetime,
        window_days: int,
    ) -> None:
        last = snapshot.last_occurrence(self.kind, instance_id)
        decision = rolling_window(last.occurred_at if last else None, now, window_days)
        if not decision.allowed:
            raise WindowClosedError(self.kind.value, decision.days_remaining)

    def _require_instance_id(self, instance_id: Optional[str]) -> str:
        if not instance_id:
            raise ValidationError("instance_id", f"{self.kind.value} needs an instance id")
        return instance_id

    def _check_not_finished(
        self, snapshot: LocalStateSnapshot, instance_id: str
    ) -> Optional[InstanceState]:
        instance = snapshot.instance(self.kind, instance_id)
        if instance is not None and instance.status.is_finished:
            raise InvariantViolationError(self.kind.value, instance_id, instance.status.value)
        return instance

    @staticmethod
    def _selected(selection: Any) -> Sequence[Any]:
        if selection is None:
            return ()
        if isinstance(selection, (str, bytes, Mapping)) or not isinstance(selection, Sequence):
            raise ValidationError("selection", "expected a list of selected actions")
        return list(dict.fromkeys(selection))

    @staticmethod
    def _local_payload(local_date: date, **fields: Any) -> Dict[str, Any]:
        return {"local_date": local_date.isoformat(), **fields}


# ============================================================================
# Boosts
# ============================================================================


class DailyBoostPolicy(ActionPolicy):
    """
    A boost is identified by its id alone; `selection` is ignored and the FP
    comes from the boost table the store also reads.

    A boost done this week stays locked until the weekly reset.
    """

    kind = ActionKind.DAILY_BOOST

    def __init__(self, config: Type[ConfigManager] = ConfigManager) -> None:
        super().__init__(config)
        self._rules = CompletionRules(config)

    def validate(self, snapshot, instance_id, selection, now) -> None:
        instance_id = self._require_instance_id(instance_id)
        self._check_daily(snapshot, instance_id)
        if instance_id in snapshot.completed_boost_ids_this_week:
            raise WindowClosedError(self.kind.value, snapshot.days_until_boost_reset)
        if snapshot.boosts_remaining_today <= 0:
            raise ValidationError(
                "boosts",
                f"daily boost limit reached ({snapshot.boosts_completed_today} completed today)",
            )

    def expected_reward(self, snapshot, instance_id, selection) -> int:
        return self._rules.boost_reward(instance_id)

    def build_payload(self, selection, local_date) -> Dict[str, Any]:
        return self._local_payload(local_date)


# ============================================================================
# Challenges
# ============================================================================


class _ChallengeDailyPolicy(ActionPolicy):
    @abstractmethod
    def minimum_selected(self, instance: Optional[InstanceState]) -> int:
        ...

    def validate(self, snapshot, instance_id, selection, now) -> None:
        instance_id = self._require_instance_id(instance_id)
        instance = self._check_not_finished(snapshot, instance_id)
        selected = self._selected(selection)
        minimum = self.minimum_selected(instance)
        if len(selected) < minimum:
            raise ValidationError(
                "selection", f"select at least {minimum} actions, got {len(selected)}"
            )
        self._check_daily(snapshot, instance_id)

    def expected_reward(self, snapshot, instance_id, selection) -> int:
        instance = snapshot.instance(self.kind, instance_id)
        if instance is None:
            return 0
        if instance.progress_count + 1 >= instance.required_count:
            return instance.daily_reward + instance.completion_reward
        return instance.daily_reward

    def build_payload(self, selection, local_date) -> Dict[str, Any]:
        return self._local_payload(local_date, selected_actions=list(self._selected(selection)))


class StandardChallengePolicy(_ChallengeDailyPolicy):
    """Daily action set of a standard challenge: at least two sub-actions."""

    kind = ActionKind.STANDARD_CHALLENGE_DAILY

    def minimum_selected(self, instance: Optional[InstanceState]) -> int:
        return self._config.get_int("challenges.standard.min_selected_actions", 2)


class CustomChallengePolicy(_ChallengeDailyPolicy):
    kind = ActionKind.CUSTOM_CHALLENGE_DAILY

    def minimum_selected(self, instance: Optional[InstanceState]) -> int:
        if instance is not None and instance.daily_minimum:
            return instance.daily_minimum
        return 1


# ============================================================================
# Quests
# ============================================================================


class QuestWeeklyPolicy(ActionPolicy):
    """Exactly one of the quest's weekly actions, once per rolling 7 days."""

    kind = ActionKind.QUEST_WEEKLY_ACTION

    def _action_index(self, selection: Any) -> int:
        if isinstance(selection, int) and not isinstance(selection, bool):
            return selection
        selected = self._selected(selection)
        if len(selected) != 1:
            raise ValidationError("selection", "select exactly one weekly action")
        try:
            return int(selected[0])
        except (TypeError, ValueError):
            raise ValidationError("selection", "weekly action must be an index") from None

    def validate(self, snapshot, instance_id, selection, now) -> None:
        instance_id = self._require_instance_id(instance_id)
        self._check_not_finished(snapshot, instance_id)
        if self._action_index(selection) < 0:
            raise ValidationError("selection", "weekly action index must be non-negative")
        self._check_rolling(
            snapshot, instance_id, now, self._config.get_int("quests.cooldown_days", 7)
        )

    def expected_reward(self, snapshot, instance_id, selection) -> int:
        instance = snapshot.instance(self.kind, instance_id)
        if instance is None:
            return 0
        if instance.progress_count + 1 >= instance.required_count:
            return instance.daily_reward + instance.completion_reward
        return instance.daily_reward

    def build_payload(self, selection, local_date) -> Dict[str, Any]:
        return self._local_payload(local_date, selected_action=self._action_index(selection))


# ============================================================================
# Health
# ============================================================================


class HealthReassessmentPolicy(ActionPolicy):
    """`selection` is the assessment: lifespan, healthspan and category scores."""

    kind = ActionKind.HEALTH_REASSESSMENT

    def _assessment(self, selection: Any) -> HealthAssessmentInput:
        if not isinstance(selection, Mapping):
            raise ValidationError("selection", "health reassessment needs an assessment mapping")
        assessment = HealthAssessmentInput.from_payload(selection)
        assessment.validate(
            HealthBounds(
                lifespan_min=self._config.get_float("health.lifespan_min", 50),
                lifespan_max=self._config.get_float("health.lifespan_max", 200),
                score_min=self._config.get_float("health.score_min", 1),
                score_max=self._config.get_float("health.score_max", 10),
            )
        )
        return assessment

    def validate(self, snapshot, instance_id, selection, now) -> None:
        self._assessment(selection)
        self._check_rolling(
            snapshot, None, now, self._config.get_int("health.reassessment_days", 30)
        )

    def expected_reward(self, snapshot, instance_id, selection) -> int:
        return health_assessment_bonus(
            level_threshold(snapshot.level), self._config.get_float("health.bonus_ratio", 0.1)
        )

    def build_payload(self, selection, local_date) -> Dict[str, Any]:
        return self._local_payload(local_date, **self._assessment(selection).to_payload())


def build_policies(config: Type[ConfigManager] = ConfigManager) -> Dict[ActionKind, ActionPolicy]:
    policies = (
        DailyBoostPolicy(config),
        StandardChallengePolicy(config),
        CustomChallengePolicy(config),
        QuestWeeklyPolicy(config),
        HealthReassessmentPolicy(config),
    )
    return {policy.kind: policy for policy in policies}
