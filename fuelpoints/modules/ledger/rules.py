"""
Authoritative completion rules shared by every store implementation.

Stores differ only in how they persist; window keys, reward snapshots,
quota checks and rolling-window gates are decided here from the
configuration tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Type, Union

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.exceptions import ConfigurationError, ConflictError
from fuelpoints.domain.models.actions import ActionKind, CompletionOutcome
from fuelpoints.domain.models.challenge import (
    ChallengeInstance,
    CustomAction,
    CustomChallengeInstance,
    build_custom_actions,
)
from fuelpoints.domain.models.health import HealthAssessmentInput, HealthBounds
from fuelpoints.domain.models.player import Player
from fuelpoints.domain.models.quest import QuestInstance
from fuelpoints.modules.shared.exceptions import InvariantViolationError, ValidationError
from fuelpoints.modules.shared.formulas import health_assessment_bonus, level_threshold
from fuelpoints.modules.shared.windows import Weekday, rolling_window, week_start

MAX_CLOCK_SKEW = timedelta(days=1)


@dataclass(frozen=True)
class ChallengeTerms:
    verifications_required: int
    daily_reward: int
    completion_bonus: int


@dataclass(frozen=True)
class CustomChallengeTerms:
    name: str
    actions: Sequence[CustomAction]
    daily_minimum: int
    target_completions: int
    fp_daily_reward: int
    fp_completion_reward: int


@dataclass(frozen=True)
class QuestTerms:
    weekly_reward: int
    completion_reward: int
    total_weeks: int

ParentInstance = Union[ChallengeInstance, CustomChallengeInstance, QuestInstance]


@dataclass(frozen=True)
class StreamHistory:
    """
    What a store already holds for one player's gated stream.

    `window_keys` and `last_at` cover the ``(kind, instance)`` stream being
    submitted; `boosts_today` counts every boost on the submission's local date
    and `boost_ids_this_week` names the boosts recorded since the week started.
    """

    window_keys: FrozenSet[str] = frozenset()
    count: int = 0
    last_at: Optional[datetime] = None
    boosts_today: int = 0
    boost_ids_this_week: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Evaluation:
    window_key: str
    outcome: CompletionOutcome
    record_payload: Dict[str, Any] = field(default_factory=dict)


class CompletionRules:
    """
    Reads reward tables and cadences from the config manager.

    Reward snapshots are taken when an instance is created and stored on the
    instance; nothing here is consulted again for in-progress instances.
    """

    def __init__(self, config: Type[ConfigManager] = ConfigManager) -> None:
        self._config = config

    # ------------------------------------------------------------------ #
    # Windows
    # ------------------------------------------------------------------ #

    @staticmethod
    def window_key(kind: ActionKind, local_date: date, ordinal: int = 0) -> str:
        """
        >>> CompletionRules.window_key(ActionKind.DAILY_BOOST, date(2024, 1, 2))
        '2024-01-02'
        >>> CompletionRules.window_key(ActionKind.QUEST_WEEKLY_ACTION, date(2024, 1, 2), 3)
        'week-3'
        """
        if kind is ActionKind.QUEST_WEEKLY_ACTION:
            return f"week-{ordinal}"
        if kind is ActionKind.HEALTH_REASSESSMENT:
            return f"assessment-{ordinal}"
        return local_date.isoformat()

    @staticmethod
    def resolve_local_date(payload: Mapping[str, Any], now: datetime) -> date:
        """
        The player's local calendar date for the completion.

        Clients send their local date; it must be within a day of the
        store's own clock (time zones span at most that).
        """
        raw = payload.get("local_date")
        if raw is None:
            return now.date()
        try:
            local = raw if isinstance(raw, date) else date.fromisoformat(str(raw))
        except ValueError:
            raise ValidationError("local_date", f"not an ISO date: {raw!r}") from None
        if abs(local - now.date()) > MAX_CLOCK_SKEW:
            raise ValidationError("local_date", f"{local} is too far from {now.date()}")
        return local

    def rolling_days(self, kind: ActionKind) -> int:
        if kind is ActionKind.QUEST_WEEKLY_ACTION:
            return self._config.get_int("quests.cooldown_days", 7)
        if kind is ActionKind.HEALTH_REASSESSMENT:
            return self._config.get_int("health.reassessment_days", 30)
        raise ValueError(f"{kind.value} is not a rolling-window kind")

    def check_rolling_gate(
        self,
        kind: ActionKind,
        last_at: Optional[datetime],
        now: datetime,
        window_key: str,
        instance_id: Optional[str] = None,
    ) -> None:
        """
        Raises
        ------
        ConflictError
            If the previous accepted record still occupies the rolling window.
        """
        decision = rolling_window(last_at, now, self.rolling_days(kind))
        if not decision.allowed:
            raise ConflictError(kind.value, window_key, instance_id)

    # ------------------------------------------------------------------ #
    # Boosts
    # ------------------------------------------------------------------ #

    @property
    def boost_quota(self) -> int:
        return self._config.get_int("boosts.daily_quota", 3)

    def check_boost_quota(self, player_id: str, local_date: date, completed_today: int) -> None:
        if completed_today >= self.boost_quota:
            raise InvariantViolationError("DailyBoostQuota", f"{player_id}:{local_date}", "exhausted")

    @property
    def reset_weekday(self) -> Weekday:
        return Weekday.from_value(self._config.get("boosts.reset_weekday", "sunday"))

    def boost_week_start(self, local_date: date) -> date:
        return week_start(local_date, self.reset_weekday)

    def check_boost_pool(
        self, boost_id: str, local_date: date, completed_this_week: FrozenSet[str]
    ) -> None:
        """
        Raises
        ------
        ConflictError
            The boost was already completed since the last weekly reset.
        """
        if boost_id in completed_this_week:
            raise ConflictError(
                ActionKind.DAILY_BOOST.value,
                f"week-of-{self.boost_week_start(local_date).isoformat()}",
                boost_id,
            )

    def boost_reward(self, boost_id: str) -> int:
        """FP for one boost, from ``boosts.fp_by_boost`` or ``boosts.default_fp``."""
        default_fp = self._config.get_int("boosts.default_fp", 1)
        table = self._config.get("boosts.fp_by_boost", {}) or {}
        raw = table.get(boost_id, default_fp)
        try:
            return max(0, int(raw))
        except (TypeError, ValueError):
            raise ConfigurationError("boosts.fp_by_boost", f"boost {boost_id} FP is {raw!r}") from None

    # ------------------------------------------------------------------ #
    # Selections
    # ------------------------------------------------------------------ #

    @staticmethod
    def selected_count(payload: Mapping[str, Any]) -> int:
        selected = payload.get("selected_actions") or ()
        return len(set(selected))

    def check_standard_selection(self, payload: Mapping[str, Any]) -> None:
        minimum = self._config.get_int("challenges.standard.min_selected_actions", 2)
        count = self.selected_count(payload)
        if count < minimum:
            raise ValidationError("selection", f"select at least {minimum} actions, got {count}")

    # ------------------------------------------------------------------ #
    # Reward snapshots
    # ------------------------------------------------------------------ #

    def challenge_terms(
        self,
        challenge_id: str,
        verifications_required: Optional[int] = None,
        daily_reward: Optional[int] = None,
        completion_bonus: Optional[int] = None,
    ) -> ChallengeTerms:
        if verifications_required is None:
            verifications_required = self._config.get_int(
                f"challenges.standard.verifications_by_challenge.{challenge_id}",
                self._config.get_int("challenges.standard.default_verifications_required", 3),
            )
        if daily_reward is None:
            daily_reward = self._config.get_int("challenges.standard.default_daily_reward", 10)
        if completion_bonus is None:
            completion_bonus = self._config.get_int(
                "challenges.standard.default_completion_bonus", 0
            )
        return ChallengeTerms(
            verifications_required=verifications_required,
            daily_reward=daily_reward,
            completion_bonus=completion_bonus,
        )

    def custom_challenge_terms(
        self,
        name: Optional[str],
        actions: Sequence[Any],
        daily_minimum: int,
    ) -> CustomChallengeTerms:
        built = build_custom_actions(
            actions, self._config.get_int("challenges.custom.min_actions", 3)
        )
        name = (name or "").strip() or self._config.get(
            "challenges.custom.default_name", "My Custom Challenge"
        )
        daily_minimum = max(1, int(daily_minimum))
        if daily_minimum > len(built):
            raise ValidationError(
                "daily_minimum",
                f"daily minimum {daily_minimum} exceeds the {len(built)} actions",
            )
        return CustomChallengeTerms(
            name=name,
            actions=built,
            daily_minimum=daily_minimum,
            target_completions=self._config.get_int("challenges.custom.target_completions", 21),
            fp_daily_reward=self._config.get_int("challenges.custom.fp_daily_reward", 10),
            fp_completion_reward=self._config.get_int(
                "challenges.custom.fp_completion_reward", 100
            ),
        )

    def quest_terms(self) -> QuestTerms:
        return QuestTerms(
            weekly_reward=self._config.get_int("quests.weekly_reward", 30),
            completion_reward=self._config.get_int("quests.completion_reward", 500),
            total_weeks=self._config.get_int("quests.total_weeks", 12),
        )

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    def health_bounds(self) -> HealthBounds:
        return HealthBounds(
            lifespan_min=self._config.get_float("health.lifespan_min", 50),
            lifespan_max=self._config.get_float("health.lifespan_max", 200),
            score_min=self._config.get_float("health.score_min", 1),
            score_max=self._config.get_float("health.score_max", 10),
        )

    def health_weights(self) -> Mapping[str, float]:
        return self._config.get("health.category_weights", {}) or {}

    def parse_health(self, payload: Mapping[str, Any]) -> HealthAssessmentInput:
        assessment = HealthAssessmentInput.from_payload(payload)
        assessment.validate(self.health_bounds())
        return assessment

    def health_reward(self, level: int) -> int:
        return health_assessment_bonus(
            level_threshold(level), self._config.get_float("health.bonus_ratio", 0.1)
        )

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def evaluate(
        self,
        *,
        player: Player,
        kind: ActionKind,
        instance_id: Optional[str],
        instance: Optional[ParentInstance],
        payload: Mapping[str, Any],
        local_date: date,
        now: datetime,
        history: StreamHistory,
    ) -> Evaluation:
        """
        Check every gate for one submission, then apply it to `instance`.

        Nothing is mutated unless every check passes, so a store that raises
        out of this method has nothing to undo.

        Raises
        ------
        ConflictError
            The window is already occupied, or the boost was done this week.
        InvariantViolationError
            The instance is finished or the boost quota is used up.
        ValidationError
            The payload is malformed or the selection is too small.
        """
        if kind is ActionKind.DAILY_BOOST:
            if not instance_id:
                raise ValidationError("instance_id", "a boost completion needs the boost id")
            window_key = self.window_key(kind, local_date)
            self._check_occupied(kind, window_key, history, instance_id)
            self.check_boost_pool(instance_id, local_date, history.boost_ids_this_week)
            self.check_boost_quota(player.id, local_date, history.boosts_today)
            reward = self.boost_reward(instance_id)
            return Evaluation(window_key, CompletionOutcome(reward=reward), {"fp": reward})

        if kind is ActionKind.HEALTH_REASSESSMENT:
            assessment = self.parse_health(payload)
            window_key = self.window_key(kind, local_date, history.count + 1)
            self.check_rolling_gate(kind, history.last_at, now, window_key)
            self._check_occupied(kind, window_key, history)
            record_payload = assessment.to_payload()
            record_payload["health_score"] = assessment.score(self.health_weights())
            return Evaluation(
                window_key,
                CompletionOutcome(reward=self.health_reward(player.level)),
                record_payload,
            )

        if instance is None:
            raise ValidationError("instance_id", f"{kind.value} needs an instance id")

        if isinstance(instance, QuestInstance):
            instance.ensure_active()
            window_key = self.window_key(kind, local_date, instance.next_week)
            last = instance.last_entry
            self.check_rolling_gate(
                kind, last.completed_at if last else None, now, window_key, instance_id
            )
            self._check_occupied(kind, window_key, history, instance_id)
            selected = payload.get("selected_action")
            outcome = instance.record_week(local_date, now, selected)
            return Evaluation(window_key, outcome, {"selected_action": selected})

        instance.ensure_active()
        selected_actions = list(dict.fromkeys(payload.get("selected_actions") or ()))
        record_payload: Dict[str, Any] = {"selected_actions": selected_actions}
        if isinstance(instance, CustomChallengeInstance):
            instance.check_selection(len(selected_actions))
            record_payload["actions_completed"] = len(selected_actions)
            record_payload["minimum_met"] = len(selected_actions) >= instance.daily_minimum
        else:
            self.check_standard_selection(payload)
        window_key = self.window_key(kind, local_date)
        self._check_occupied(kind, window_key, history, instance_id)
        outcome = instance.record_daily_completion(local_date, now)
        return Evaluation(window_key, outcome, record_payload)

    @staticmethod
    def _check_occupied(
        kind: ActionKind,
        window_key: str,
        history: StreamHistory,
        instance_id: Optional[str] = None,
    ) -> None:
        if window_key in history.window_keys:
            raise ConflictError(kind.value, window_key, instance_id)
