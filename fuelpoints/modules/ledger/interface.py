"""
Authoritative completion store interface.

Purpose
-------
The engine consumes this abstract store; the store owns the ledger of
completion records and the player counters derived from it, and is the
only place where gating windows are enforced authoritatively.

Contract
--------
- `submit_completion` inserts at most one record per
  ``(player, kind, instance, window)``. A second insert for an occupied
  window raises `ConflictError`; callers treat it as "already done".
- A completion on a finished instance raises `InvariantViolationError`.
- Connectivity or timeout failures raise `TransientStoreError`.
- `trigger_level_up_if_eligible` is idempotent: repeating it with the same
  FP total never increments twice.
- Rewards for challenges and quests are snapshotted at instance creation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from fuelpoints.domain.models.actions import (
    ActionKind,
    CompletionRecord,
    InstanceState,
    Occurrence,
    StateKey,
)
from fuelpoints.domain.models.player import LevelUpResult, PlayerState, RolloverResult


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of an accepted completion."""

    accepted: bool
    reward: int
    parent_completed: bool = False
    record: Optional[CompletionRecord] = None
    player: Optional[PlayerState] = None


@dataclass(frozen=True)
class TodayStats:
    day: date
    fp_earned_today: int = 0
    boosts_completed_today: int = 0
    completed_boost_ids: Sequence[str] = field(default_factory=tuple)
    completed_boost_ids_this_week: Sequence[str] = field(default_factory=tuple)


class CompletionStore(ABC):
    """Abstract authoritative store."""

    # ------------------------------------------------------------------ #
    # Completions
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def submit_completion(
        self,
        player_id: str,
        kind: ActionKind,
        instance_id: Optional[str],
        payload: Mapping[str, Any],
    ) -> SubmissionResult:
        """
        Record one completion and credit its reward.

        Raises
        ------
        ConflictError
            The gating window already holds an accepted record.
        InvariantViolationError
            The parent instance is finished, or the daily boost quota is used up.
        TransientStoreError
            The store could not be reached or timed out.
        """

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def get_player_state(self, player_id: str) -> PlayerState:
        """Raises NotFoundError for unknown players."""

    @abstractmethod
    async def get_instance_state(self, kind: ActionKind, instance_id: str) -> InstanceState:
        """Raises NotFoundError for unknown instances."""

    @abstractmethod
    async def list_instances(
        self, player_id: str, *, active_only: bool = True
    ) -> List[InstanceState]:
        ...

    @abstractmethod
    async def get_today_stats(self, player_id: str, today: date) -> TodayStats:
        """Counters for `today` plus the boosts done since the weekly reset."""

    @abstractmethod
    async def get_last_occurrences(self, player_id: str) -> Dict[StateKey, Occurrence]:
        ...

    @abstractmethod
    async def list_records(self, player_id: str) -> List[CompletionRecord]:
        ...

    # ------------------------------------------------------------------ #
    # Progression
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def ensure_player(self, player_id: str) -> PlayerState:
        """Create the player with zeroed counters if missing."""

    @abstractmethod
    async def trigger_level_up_if_eligible(
        self, player_id: str, current_fp: int
    ) -> LevelUpResult:
        ...

    @abstractmethod
    async def apply_day_rollover(self, player_id: str, day: date) -> RolloverResult:
        """Close out local day `day`: extend or reset the streak, pay tier bonuses."""

    # ------------------------------------------------------------------ #
    # Instance lifecycle
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def start_challenge(
        self,
        player_id: str,
        challenge_id: str,
        *,
        verifications_required: Optional[int] = None,
        daily_reward: Optional[int] = None,
        completion_bonus: Optional[int] = None,
    ) -> InstanceState:
        ...

    @abstractmethod
    async def create_custom_challenge(
        self,
        player_id: str,
        name: str,
        actions: Sequence[Any],
        daily_minimum: int,
    ) -> InstanceState:
        ...

    @abstractmethod
    async def start_quest(self, player_id: str, quest_id: str) -> InstanceState:
        ...

    @abstractmethod
    async def cancel_instance(
        self, player_id: str, kind: ActionKind, instance_id: str
    ) -> InstanceState:
        """Raises InvalidOperationError if the instance is already finished."""

    async def close(self) -> None:
        """Release store resources. Default: nothing to release."""
