"""
Time-gated action kinds, instance status and completion records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ActionKind(str, Enum):
    """Closed set of gated actions, each with its own cadence."""

    DAILY_BOOST = "daily_boost"
    STANDARD_CHALLENGE_DAILY = "standard_challenge_daily"
    CUSTOM_CHALLENGE_DAILY = "custom_challenge_daily"
    QUEST_WEEKLY_ACTION = "quest_weekly_action"
    HEALTH_REASSESSMENT = "health_reassessment"

    @property
    def is_daily(self) -> bool:
        return self in _DAILY_KINDS

    @property
    def has_parent_instance(self) -> bool:
        """True when instance_id names a challenge or quest instance."""
        return self in _PARENT_KINDS


_DAILY_KINDS = frozenset(
    {
        ActionKind.DAILY_BOOST,
        ActionKind.STANDARD_CHALLENGE_DAILY,
        ActionKind.CUSTOM_CHALLENGE_DAILY,
    }
)

_PARENT_KINDS = frozenset(
    {
        ActionKind.STANDARD_CHALLENGE_DAILY,
        ActionKind.CUSTOM_CHALLENGE_DAILY,
        ActionKind.QUEST_WEEKLY_ACTION,
    }
)


class InstanceStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_finished(self) -> bool:
        return self is not InstanceStatus.ACTIVE


# (kind, instance_id) identifies one gated stream for a player
StateKey = Tuple[ActionKind, Optional[str]]


def instance_key(instance_id: Optional[str]) -> str:
    """Storage form of an optional instance id (unique constraints dislike NULL)."""
    return instance_id or ""


@dataclass(frozen=True)
class CompletionRecord:
    """
    One accepted occurrence of a gated action. Append-only.

    `window_key` names the gating window the record occupies: the local ISO
    date for daily kinds, ``week-<n>`` for quest actions and
    ``assessment-<n>`` for health reassessments.
    """

    record_id: str
    player_id: str
    kind: ActionKind
    instance_id: Optional[str]
    occurred_on: date
    occurred_at: datetime
    window_key: str
    fp_earned: int
    parent_completed: bool = False
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def state_key(self) -> StateKey:
        return (self.kind, self.instance_id)


@dataclass(frozen=True)
class Occurrence:
    """Most recent accepted occurrence for one (kind, instance) stream."""

    local_date: date
    occurred_at: datetime


@dataclass(frozen=True)
class CompletionOutcome:
    """Reward credited by one accepted completion of a parent instance."""

    reward: int
    parent_completed: bool = False


@dataclass(frozen=True)
class InstanceState:
    """
    Store view of a challenge, custom challenge or quest instance.

    `progress_count` is the verification count, completion count or number
    of completed weeks; `required_count` is what completes the instance.
    """

    kind: ActionKind
    instance_id: str
    player_id: str
    parent_id: Optional[str]
    status: InstanceStatus
    progress_count: int
    required_count: int
    daily_reward: int
    completion_reward: int
    daily_minimum: Optional[int] = None
    name: Optional[str] = None
    last_completed_on: Optional[date] = None
    last_completed_at: Optional[datetime] = None

    @property
    def state_key(self) -> StateKey:
        return (self.kind, self.instance_id)
