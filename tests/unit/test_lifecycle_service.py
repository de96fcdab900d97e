"""
Unit tests for LifecycleService.

The store is mocked; these tests cover input validation, the calls made
to the store and the lifecycle events published on the bus.
"""

import logging

import pytest

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.domain.models import ActionKind, CustomAction, InstanceState, InstanceStatus
from fuelpoints.modules.ledger.interface import CompletionStore
from fuelpoints.modules.lifecycle import LifecycleService
from fuelpoints.modules.shared.exceptions import InvalidOperationError, ValidationError
from tests.conftest import PLAYER_ID


def _state(kind=ActionKind.STANDARD_CHALLENGE_DAILY, status=InstanceStatus.ACTIVE):
    return InstanceState(
        kind=kind,
        instance_id="i1",
        player_id=PLAYER_ID,
        parent_id="mb1",
        status=status,
        progress_count=0,
        required_count=3,
        daily_reward=10,
        completion_reward=0,
    )


@pytest.fixture
def mock_store(mocker):
    return mocker.AsyncMock(spec=CompletionStore)


@pytest.fixture
def service(mock_store, bus):
    return LifecycleService(mock_store, ConfigManager, bus, logging.getLogger("tests.lifecycle"))


@pytest.mark.unit
class TestStartChallenge:
    async def test_start_passes_overrides_and_announces(self, service, mock_store, published):
        # Arrange
        mock_store.start_challenge.return_value = _state()

        # Act
        instance = await service.start_challenge(PLAYER_ID, "mb1", verifications_required=5)

        # Assert
        assert instance.instance_id == "i1"
        mock_store.start_challenge.assert_awaited_once_with(
            PLAYER_ID, "mb1", verifications_required=5, daily_reward=None, completion_bonus=None
        )
        assert published[-1].source == "lifecycle"
        assert published[-1].extra == {"change": "started", "status": "active"}

    async def test_blank_challenge_id_rejected(self, service, mock_store):
        with pytest.raises(ValidationError):
            await service.start_challenge(PLAYER_ID, "")

        mock_store.start_challenge.assert_not_awaited()

    @pytest.mark.parametrize("required", [0, -2, True])
    async def test_non_positive_verifications_rejected(self, service, mock_store, required):
        with pytest.raises(ValidationError):
            await service.start_challenge(PLAYER_ID, "mb1", verifications_required=required)

        mock_store.start_challenge.assert_not_awaited()


@pytest.mark.unit
class TestCustomChallenge:
    async def test_actions_built_and_name_defaulted(self, service, mock_store):
        mock_store.create_custom_challenge.return_value = _state(ActionKind.CUSTOM_CHALLENGE_DAILY)

        await service.create_custom_challenge(PLAYER_ID, ["Read", "Walk", "Sleep early"], name="  ")

        player_id, name, actions, daily_minimum = mock_store.create_custom_challenge.await_args.args
        assert name == "My Custom Challenge"
        assert actions[0] == CustomAction("Read", "Mindset")
        assert daily_minimum == 1

    async def test_daily_minimum_clamped(self, service, mock_store):
        mock_store.create_custom_challenge.return_value = _state(ActionKind.CUSTOM_CHALLENGE_DAILY)

        await service.create_custom_challenge(PLAYER_ID, ["a", "b", "c"], daily_minimum=-3)

        assert mock_store.create_custom_challenge.await_args.args[3] == 1

    async def test_daily_minimum_above_action_count_rejected(self, service, mock_store):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_custom_challenge(PLAYER_ID, ["a", "b", "c"], daily_minimum=4)

        assert exc_info.value.field == "daily_minimum"
        mock_store.create_custom_challenge.assert_not_awaited()

    async def test_too_few_actions_rejected(self, service, mock_store):
        with pytest.raises(ValidationError):
            await service.create_custom_challenge(PLAYER_ID, ["a", "b"])

    async def test_min_actions_from_config(self, service, mock_store):
        ConfigManager.set("challenges.custom.min_actions", 2)
        mock_store.create_custom_challenge.return_value = _state(ActionKind.CUSTOM_CHALLENGE_DAILY)

        await service.create_custom_challenge(PLAYER_ID, ["a", "b"])

        mock_store.create_custom_challenge.assert_awaited_once()


@pytest.mark.unit
class TestQuestsAndCancel:
    async def test_start_quest(self, service, mock_store):
        mock_store.start_quest.return_value = _state(ActionKind.QUEST_WEEKLY_ACTION)

        await service.start_quest(PLAYER_ID, "quest-a")

        mock_store.start_quest.assert_awaited_once_with(PLAYER_ID, "quest-a")

    async def test_blank_quest_id_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.start_quest(PLAYER_ID, "")

    async def test_cancel_announces_new_status(self, service, mock_store, published):
        mock_store.cancel_instance.return_value = _state(status=InstanceStatus.CANCELLED)

        instance = await service.cancel_instance(PLAYER_ID, "standard_challenge_daily", "i1")

        assert instance.status is InstanceStatus.CANCELLED
        mock_store.cancel_instance.assert_awaited_once_with(
            PLAYER_ID, ActionKind.STANDARD_CHALLENGE_DAILY, "i1"
        )
        assert published[-1].extra["change"] == "cancelled"

    @pytest.mark.parametrize("kind", [ActionKind.DAILY_BOOST, ActionKind.HEALTH_REASSESSMENT])
    async def test_uncancellable_kinds_rejected(self, service, mock_store, kind):
        with pytest.raises(ValidationError) as exc_info:
            await service.cancel_instance(PLAYER_ID, kind, "i1")

        assert exc_info.value.field == "kind"
        mock_store.cancel_instance.assert_not_awaited()

    async def test_store_rejection_propagates_without_event(self, service, mock_store, published):
        mock_store.cancel_instance.side_effect = InvalidOperationError(
            "cancel_challenge", "challenge is already completed"
        )

        with pytest.raises(InvalidOperationError):
            await service.cancel_instance(PLAYER_ID, ActionKind.STANDARD_CHALLENGE_DAILY, "i1")

        assert published == []
