"""
Domain models for progression and time-gated completions.
"""

from fuelpoints.domain.models.actions import (
    ActionKind,
    CompletionOutcome,
    CompletionRecord,
    InstanceState,
    InstanceStatus,
    Occurrence,
    StateKey,
)
from fuelpoints.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
)
from fuelpoints.domain.models.challenge import (
    CUSTOM_ACTION_CATEGORIES,
    ChallengeInstance,
    CustomAction,
    CustomChallengeInstance,
    build_custom_actions,
)
from fuelpoints.domain.models.health import HealthAssessmentInput, HealthBounds
from fuelpoints.domain.models.player import LevelUpResult, Player, PlayerState, RolloverResult
from fuelpoints.domain.models.quest import QuestInstance, WeeklyProgress

__all__ = [
    "ActionKind",
    "CompletionOutcome",
    "CompletionRecord",
    "InstanceState",
    "InstanceStatus",
    "Occurrence",
    "StateKey",
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "CUSTOM_ACTION_CATEGORIES",
    "ChallengeInstance",
    "CustomAction",
    "CustomChallengeInstance",
    "build_custom_actions",
    "HealthAssessmentInput",
    "HealthBounds",
    "LevelUpResult",
    "Player",
    "PlayerState",
    "RolloverResult",
    "QuestInstance",
    "WeeklyProgress",
]
