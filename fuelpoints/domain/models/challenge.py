"""
Challenge domain models: standard and custom challenge instances.

Purpose
-------
Own the verification counting and completion transition of a challenge a
player has started. Rewards are snapshotted when the instance is created,
so later changes to reward tables never alter an in-progress challenge.

Responsibilities
----------------
- Count one verification per accepted daily action set
- Transition to ``completed`` on the last verification and pay the
  completion bonus in the same outcome
- Reject completions on finished instances (`InvariantViolationError`)
- Cancel active instances; cancelling a completed one is rejected
- Validate custom challenge definitions
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence

from fuelpoints.domain.models.actions import (
    ActionKind,
    CompletionOutcome,
    InstanceState,
    InstanceStatus,
)
from fuelpoints.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_positive,
)
from fuelpoints.modules.shared.exceptions import (
    InvalidOperationError,
    InvariantViolationError,
    ValidationError,
)

CUSTOM_ACTION_CATEGORIES = ("Mindset", "Sleep", "Exercise", "Nutrition", "Biohacking")


class ChallengeInstance(AggregateRoot):
    """A standard challenge started by a player."""

    KIND = ActionKind.STANDARD_CHALLENGE_DAILY
    RESOURCE = "ChallengeInstance"

    def __init__(
        self,
        instance_id: str,
        player_id: str,
        challenge_id: Optional[str],
        verifications_required: int,
        daily_reward: int,
        completion_bonus: int,
        status: InstanceStatus = InstanceStatus.ACTIVE,
        verification_count: int = 0,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
        last_completed_on: Optional[date] = None,
        last_completed_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(instance_id)
        validate_positive(verifications_required, "verifications_required")
        validate_non_negative(daily_reward, "daily_reward")
        validate_non_negative(completion_bonus, "completion_bonus")
        validate_non_negative(verification_count, "verification_count")

        self.player_id = player_id
        self.challenge_id = challenge_id
        self.verifications_required = verifications_required
        self.daily_reward = daily_reward
        self.completion_bonus = completion_bonus
        self.status = status
        self.verification_count = verification_count
        self.started_at = started_at
        self.finished_at = finished_at
        self.last_completed_on = last_completed_on
        self.last_completed_at = last_completed_at

    # ------------------------------------------------------------------ #
    # Business methods
    # ------------------------------------------------------------------ #

    def ensure_active(self) -> None:
        if self.status is not InstanceStatus.ACTIVE:
            raise InvariantViolationError(self.RESOURCE, self.id, self.status.value)

    def record_daily_completion(self, on: date, at: datetime) -> CompletionOutcome:
        """
        Count one accepted daily action set.

        The last verification completes the challenge and pays the daily
        reward plus the completion bonus together.

        Raises
        ------
        InvariantViolationError
            If the instance is already completed or cancelled.
        """
        self.ensure_active()

        self.verification_count += 1
        self.last_completed_on = on
        self.last_completed_at = at

        if self.verification_count < self.verifications_required:
            return CompletionOutcome(reward=self.daily_reward)

        self.status = InstanceStatus.COMPLETED
        self.finished_at = at
        self.add_domain_event(
            "challenge.completed",
            {
                "instance_id": self.id,
                "player_id": self.player_id,
                "kind": self.KIND.value,
                "completion_bonus": self.completion_bonus,
            },
        )
        return CompletionOutcome(
            reward=self.daily_reward + self.completion_bonus,
            parent_completed=True,
        )

    def cancel(self, at: datetime) -> None:
        """
        Raises
        ------
        InvalidOperationError
            If the instance is not active.
        """
        if self.status is not InstanceStatus.ACTIVE:
            raise InvalidOperationError(
                "cancel_challenge", f"challenge is already {self.status.value}"
            )
        self.status = InstanceStatus.CANCELLED
        self.finished_at = at
        self.add_domain_event(
            "challenge.cancelled",
            {"instance_id": self.id, "player_id": self.player_id, "kind": self.KIND.value},
        )

    def to_state(self) -> InstanceState:
        return InstanceState(
            kind=self.KIND,
            instance_id=self.id,
            player_id=self.player_id,
            parent_id=self.challenge_id,
            status=self.status,
            progress_count=self.verification_count,
            required_count=self.verifications_required,
            daily_reward=self.daily_reward,
            completion_reward=self.completion_bonus,
            last_completed_on=self.last_completed_on,
            last_completed_at=self.last_completed_at,
        )


@dataclass(frozen=True)
class CustomAction:
    text: str
    category: str = "Mindset"


def build_custom_actions(raw_actions: Sequence[object], min_actions: int = 3) -> List[CustomAction]:
    """
    Normalize and validate a custom challenge's action list.

    Accepts plain strings or mappings with ``text`` and ``category``.

    Raises
    ------
    ValidationError
        Fewer than `min_actions` actions, an empty action text or an unknown
        category.
    """
    actions: List[CustomAction] = []
    for raw in raw_actions:
        if isinstance(raw, CustomAction):
            action = raw
        elif isinstance(raw, str):
            action = CustomAction(text=raw)
        elif isinstance(raw, dict):
            action = CustomAction(
                text=str(raw.get("text") or ""),
                category=str(raw.get("category") or "Mindset"),
            )
        else:
            raise ValidationError("actions", f"unsupported action entry: {raw!r}")

        text = action.text.strip()
        if not text:
            raise ValidationError("actions", "every action needs a description")
        if action.category not in CUSTOM_ACTION_CATEGORIES:
            raise ValidationError("actions", f"unknown category {action.category!r}")
        actions.append(CustomAction(text=text, category=action.category))

    if len(actions) < min_actions:
        raise ValidationError(
            "actions", f"at least {min_actions} actions are required, got {len(actions)}"
        )
    return actions


class CustomChallengeInstance(ChallengeInstance):
    """
    A player-authored challenge.

    `daily_minimum` is the number of its actions a daily set must include;
    the instance completes after `target_completions` accepted days.
    """

    KIND = ActionKind.CUSTOM_CHALLENGE_DAILY
    RESOURCE = "CustomChallengeInstance"

    def __init__(
        self,
        instance_id: str,
        player_id: str,
        name: str,
        actions: Sequence[CustomAction],
        daily_minimum: int,
        target_completions: int,
        fp_daily_reward: int,
        fp_completion_reward: int,
        status: InstanceStatus = InstanceStatus.ACTIVE,
        completion_count: int = 0,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
        last_completed_on: Optional[date] = None,
        last_completed_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(
            instance_id=instance_id,
            player_id=player_id,
            challenge_id=None,
            verifications_required=target_completions,
            daily_reward=fp_daily_reward,
            completion_bonus=fp_completion_reward,
            status=status,
            verification_count=completion_count,
            started_at=started_at,
            finished_at=finished_at,
            last_completed_on=last_completed_on,
            last_completed_at=last_completed_at,
        )
        if not name.strip():
            raise DomainValidationError("name must not be empty", field="name")
        if daily_minimum > len(actions):
            raise DomainValidationError(
                f"daily_minimum {daily_minimum} exceeds the {len(actions)} actions",
                field="daily_minimum",
            )
        self.name = name
        self.actions = list(actions)
        self.daily_minimum = max(1, daily_minimum)

    @property
    def completion_count(self) -> int:
        return self.verification_count

    @property
    def target_completions(self) -> int:
        return self.verifications_required

    def check_selection(self, selected_count: int) -> None:
        """
        Raises
        ------
        ValidationError
            If fewer than `daily_minimum` actions are selected.
        """
        if selected_count < self.daily_minimum:
            raise ValidationError(
                "selection",
                f"select at least {self.daily_minimum} actions, got {selected_count}",
            )

    def cancel(self, at: datetime) -> None:
        if self.status is not InstanceStatus.ACTIVE:
            raise InvalidOperationError(
                "cancel_custom_challenge", f"custom challenge is already {self.status.value}"
            )
        super().cancel(at)

    def to_state(self) -> InstanceState:
        return InstanceState(
            kind=self.KIND,
            instance_id=self.id,
            player_id=self.player_id,
            parent_id=None,
            status=self.status,
            progress_count=self.verification_count,
            required_count=self.verifications_required,
            daily_reward=self.daily_reward,
            completion_reward=self.completion_bonus,
            daily_minimum=self.daily_minimum,
            name=self.name,
            last_completed_on=self.last_completed_on,
            last_completed_at=self.last_completed_at,
        )
