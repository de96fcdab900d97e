"""
Completion Module
=================

The generic attempt pipeline and the per-session engine facade.

Exports:
- FuelEngine: One player session (state, workflow, lifecycle, resync)
- ActionCompletionWorkflow: Validate, apply optimistically, submit, reconcile
- ActionPolicy and the per-kind policies
"""

from .engine import FuelEngine
from .policies import (
    ActionPolicy,
    CustomChallengePolicy,
    DailyBoostPolicy,
    HealthReassessmentPolicy,
    QuestWeeklyPolicy,
    StandardChallengePolicy,
    build_policies,
)
from .workflow import ActionCompletionWorkflow, AttemptResult, AttemptState

__all__ = [
    "FuelEngine",
    "ActionCompletionWorkflow",
    "AttemptResult",
    "AttemptState",
    # Policies
    "ActionPolicy",
    "DailyBoostPolicy",
    "StandardChallengePolicy",
    "CustomChallengePolicy",
    "QuestWeeklyPolicy",
    "HealthReassessmentPolicy",
    "build_policies",
]
