"""
Quest domain model.

A quest runs for up to 12 weeks; each accepted weekly action appends one
entry to `weekly_progress`. The 12th week completes the quest and pays the
weekly reward plus the completion reward in the same outcome.
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
from fuelpoints.domain.models.base import AggregateRoot, validate_non_negative, validate_positive
from fuelpoints.modules.shared.exceptions import InvalidOperationError, InvariantViolationError


@dataclass(frozen=True)
class WeeklyProgress:
    week_number: int
    completion_date: date
    completed_at: datetime
    fp_earned: int
    selected_action: Optional[int] = None


class QuestInstance(AggregateRoot):
    KIND = ActionKind.QUEST_WEEKLY_ACTION
    RESOURCE = "QuestInstance"

    def __init__(
        self,
        instance_id: str,
        player_id: str,
        quest_id: Optional[str],
        weekly_reward: int,
        completion_reward: int,
        total_weeks: int = 12,
        status: InstanceStatus = InstanceStatus.ACTIVE,
        weekly_progress: Sequence[WeeklyProgress] = (),
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(instance_id)
        validate_non_negative(weekly_reward, "weekly_reward")
        validate_non_negative(completion_reward, "completion_reward")
        validate_positive(total_weeks, "total_weeks")

        self.player_id = player_id
        self.quest_id = quest_id
        self.weekly_reward = weekly_reward
        self.completion_reward = completion_reward
        self.total_weeks = total_weeks
        self.status = status
        self.weekly_progress: List[WeeklyProgress] = list(weekly_progress)
        self.started_at = started_at
        self.finished_at = finished_at

    @property
    def next_week(self) -> int:
        return min(len(self.weekly_progress) + 1, self.total_weeks)

    @property
    def last_entry(self) -> Optional[WeeklyProgress]:
        return self.weekly_progress[-1] if self.weekly_progress else None

    def ensure_active(self) -> None:
        if self.status is not InstanceStatus.ACTIVE:
            raise InvariantViolationError(self.RESOURCE, self.id, self.status.value)

    def record_week(
        self,
        on: date,
        at: datetime,
        selected_action: Optional[int] = None,
    ) -> CompletionOutcome:
        """
        Append the next week's entry.

        Raises
        ------
        InvariantViolationError
            If the quest is already completed or cancelled.
        """
        self.ensure_active()

        week_number = self.next_week
        completes = week_number >= self.total_weeks
        reward = self.weekly_reward + (self.completion_reward if completes else 0)

        self.weekly_progress.append(
            WeeklyProgress(
                week_number=week_number,
                completion_date=on,
                completed_at=at,
                fp_earned=reward,
                selected_action=selected_action,
            )
        )

        if completes:
            self.status = InstanceStatus.COMPLETED
            self.finished_at = at
            self.add_domain_event(
                "quest.completed",
                {"instance_id": self.id, "player_id": self.player_id},
            )
        return CompletionOutcome(reward=reward, parent_completed=completes)

    def cancel(self, at: datetime) -> None:
        if self.status is not InstanceStatus.ACTIVE:
            raise InvalidOperationError("cancel_quest", f"quest is already {self.status.value}")
        self.status = InstanceStatus.CANCELLED
        self.finished_at = at
        self.add_domain_event(
            "quest.cancelled", {"instance_id": self.id, "player_id": self.player_id}
        )

    def to_state(self) -> InstanceState:
        last = self.last_entry
        return InstanceState(
            kind=self.KIND,
            instance_id=self.id,
            player_id=self.player_id,
            parent_id=self.quest_id,
            status=self.status,
            progress_count=len(self.weekly_progress),
            required_count=self.total_weeks,
            daily_reward=self.weekly_reward,
            completion_reward=self.completion_reward,
            last_completed_on=last.completion_date if last else None,
            last_completed_at=last.completed_at if last else None,
        )
