"""
Challenge, custom challenge and quest lifecycle.

Starting, creating and cancelling instances are distinct operations from
completion attempts: they never go through the optimistic workflow, and a
cancel on a completed instance is rejected by the domain model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence, Type

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.event.types import UpdateEvent
from fuelpoints.core.logging import LogContext
from fuelpoints.domain.models.actions import ActionKind, InstanceState
from fuelpoints.domain.models.challenge import build_custom_actions
from fuelpoints.modules.ledger.interface import CompletionStore
from fuelpoints.modules.shared.base_service import BaseService
from fuelpoints.modules.shared.exceptions import FuelDomainException, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from fuelpoints.core.event.bus import UpdateEventBus

CANCELLABLE_KINDS = frozenset(
    {
        ActionKind.STANDARD_CHALLENGE_DAILY,
        ActionKind.CUSTOM_CHALLENGE_DAILY,
        ActionKind.QUEST_WEEKLY_ACTION,
    }
)


class LifecycleService(BaseService):
    """
    Args:
        store: Authoritative completion store
        config_manager: Configuration manager
        event_bus: Bus receiving one ``source="lifecycle"`` event per change
        logger: Structured logger instance
    """

    def __init__(
        self,
        store: CompletionStore,
        config_manager: Type[ConfigManager],
        event_bus: UpdateEventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.store = store

    async def start_challenge(
        self,
        player_id: str,
        challenge_id: str,
        *,
        verifications_required: Optional[int] = None,
        daily_reward: Optional[int] = None,
        completion_bonus: Optional[int] = None,
    ) -> InstanceState:
        if not challenge_id:
            raise ValidationError("challenge_id", "challenge id is required")
        if verifications_required is not None:
            self.validate_positive_int(verifications_required, "verifications_required")

        async with LogContext(player_id=player_id, operation="start_challenge"):
            instance = await self.store.start_challenge(
                player_id,
                challenge_id,
                verifications_required=verifications_required,
                daily_reward=daily_reward,
                completion_bonus=completion_bonus,
            )
            self.log_operation(
                "start_challenge", challenge_id=challenge_id, instance_id=instance.instance_id
            )
        self._announce(instance, "started")
        return instance

    async def create_custom_challenge(
        self,
        player_id: str,
        actions: Sequence[Any],
        *,
        name: Optional[str] = None,
        daily_minimum: int = 1,
    ) -> InstanceState:
        """
        Create a player-authored challenge.

        Blank names fall back to the configured default and a daily minimum
        below 1 is clamped to 1.

        Raises:
            ValidationError: Fewer than the configured minimum of actions,
                an empty action text or a daily minimum above the action count
        """
        min_actions = int(self.get_config("challenges.custom.min_actions", 3))
        built = build_custom_actions(actions, min_actions)
        name = (name or "").strip() or self.get_config(
            "challenges.custom.default_name", "My Custom Challenge"
        )
        daily_minimum = max(1, int(daily_minimum))
        if daily_minimum > len(built):
            raise ValidationError(
                "daily_minimum", f"daily minimum {daily_minimum} exceeds the {len(built)} actions"
            )

        async with LogContext(player_id=player_id, operation="create_custom_challenge"):
            instance = await self.store.create_custom_challenge(
                player_id, name, built, daily_minimum
            )
            self.log_operation(
                "create_custom_challenge",
                instance_id=instance.instance_id,
                actions=len(built),
                daily_minimum=daily_minimum,
            )
        self._announce(instance, "created")
        return instance

    async def start_quest(self, player_id: str, quest_id: str) -> InstanceState:
        if not quest_id:
            raise ValidationError("quest_id", "quest id is required")
        async with LogContext(player_id=player_id, operation="start_quest"):
            instance = await self.store.start_quest(player_id, quest_id)
            self.log_operation("start_quest", quest_id=quest_id, instance_id=instance.instance_id)
        self._announce(instance, "started")
        return instance

    async def cancel_instance(
        self, player_id: str, kind: ActionKind, instance_id: str
    ) -> InstanceState:
        """
        Raises:
            ValidationError: The kind has no cancellable instances
            InvalidOperationError: The instance is already completed or cancelled
        """
        kind = ActionKind(kind)
        if kind not in CANCELLABLE_KINDS:
            raise ValidationError("kind", f"{kind.value} instances cannot be cancelled")

        async with LogContext(
            player_id=player_id,
            action_kind=kind.value,
            instance_id=instance_id,
            operation="cancel_instance",
        ):
            try:
                instance = await self.store.cancel_instance(player_id, kind, instance_id)
            except FuelDomainException as e:
                self.log.info(
                    "Cancel rejected",
                    extra={"error_code": e.error_code, "reason": e.message},
                )
                raise
            self.log_operation("cancel_instance")
        self._announce(instance, "cancelled")
        return instance

    def _announce(self, instance: InstanceState, change: str) -> None:
        self.emit_event(
            UpdateEvent(
                kind=instance.kind.value,
                instance_id=instance.instance_id,
                source="lifecycle",
                extra={"change": change, "status": instance.status.value},
            )
        )
