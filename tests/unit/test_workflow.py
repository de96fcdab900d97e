"""
Unit tests for ActionCompletionWorkflow through a started engine session.

Test Coverage
-------------
- Confirmed attempts: optimistic apply, authoritative reward, update event
- Conflicts absorbed as zero-reward successes
- Store failures roll the optimistic change back
- Finished instances and local rejections never reach the store
- Concurrent attempts on one stream join the first
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.exceptions import TransientStoreError
from fuelpoints.domain.models import ActionKind, InstanceStatus
from fuelpoints.modules.completion import AttemptState
from fuelpoints.modules.shared.exceptions import (
    InvariantViolationError,
    ValidationError,
    WindowClosedError,
)
from tests.conftest import PLAYER_ID

TWO_ACTIONS = ["walk", "read"]


def _completion_events(published):
    return [e for e in published if e.source == "completion"]


@pytest.mark.unit
class TestConfirmedAttempts:
    async def test_boost_confirmed(self, engine, store, published):
        # Act
        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        # Assert
        assert result.outcome is AttemptState.CONFIRMED
        assert result.reward == 1
        assert result.transitions == (
            AttemptState.IDLE,
            AttemptState.VALIDATING,
            AttemptState.OPTIMISTICALLY_APPLIED,
            AttemptState.SUBMITTING,
            AttemptState.CONFIRMED,
        )
        snapshot = engine.get_local_state()
        assert snapshot.fuel_points == 1
        assert snapshot.boosts_remaining_today == 2
        assert snapshot.pending_attempts == 0
        events = _completion_events(published)
        assert len(events) == 1
        assert events[0].fp_earned == 1
        assert events[0].kind == "daily_boost"

    async def test_client_supplied_fp_is_ignored(self, engine, store):
        # Act
        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1", {"fp": 100000})

        # Assert
        assert result.reward == 1
        assert engine.get_local_state().fuel_points == 1
        assert (await store.get_player_state(PLAYER_ID)).fuel_points == 1
        records = await store.list_records(PLAYER_ID)
        assert records[0].payload == {"fp": 1}

    async def test_boost_fp_from_config_table(self, engine, store):
        ConfigManager.set("boosts.fp_by_boost", {"cold-plunge": 3})

        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "cold-plunge")

        assert result.reward == 3
        assert engine.get_local_state().fp_earned_today == 3
        assert (await store.get_player_state(PLAYER_ID)).fuel_points == 3

    async def test_last_challenge_verification_pays_daily_plus_bonus(self, engine, clock):
        instance = await engine.start_challenge("mb1", verifications_required=2, completion_bonus=50)
        first = await engine.attempt_completion(
            ActionKind.STANDARD_CHALLENGE_DAILY, instance.instance_id, TWO_ACTIONS
        )
        clock.advance(days=1)

        second = await engine.attempt_completion(
            ActionKind.STANDARD_CHALLENGE_DAILY, instance.instance_id, TWO_ACTIONS
        )

        assert first.reward == 10
        assert second.reward == 60
        assert second.parent_completed is True
        progress = engine.get_local_state().instance(
            ActionKind.STANDARD_CHALLENGE_DAILY, instance.instance_id
        )
        assert progress.status is InstanceStatus.COMPLETED
        assert progress.progress_count == 2

    async def test_health_reassessment_ignores_instance_id(self, engine, store):
        assessment = {"expected_lifespan": 90, "expected_healthspan": 75, "category_scores": {}}

        result = await engine.attempt_completion(ActionKind.HEALTH_REASSESSMENT, "ignored", assessment)

        records = await store.list_records(PLAYER_ID)
        assert result.reward == 2
        assert records[0].instance_id is None


@pytest.mark.unit
class TestConflicts:
    async def test_window_taken_elsewhere_resolves_with_zero_reward(self, engine, store, clock, published):
        # Arrange: another surface already recorded this boost today
        await store.submit_completion(
            PLAYER_ID, ActionKind.DAILY_BOOST, "b1", {"local_date": clock.today().isoformat()}
        )

        # Act
        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        # Assert
        assert result.outcome is AttemptState.CONFLICT_RESOLVED
        assert result.reward == 0
        assert engine.get_local_state().boosts_completed_today == 1
        assert engine.get_local_state().pending_attempts == 0
        assert _completion_events(published)[-1].conflict is True
        assert len(await store.list_records(PLAYER_ID)) == 1

    async def test_repeat_after_confirm_rejected_locally(self, engine, store):
        await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        with pytest.raises(WindowClosedError):
            await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        assert store.submit_calls == 1
        assert engine.get_local_state().fuel_points == 1

    async def test_boost_done_earlier_this_week_elsewhere_resolves(self, engine, store, clock):
        # Arrange: another surface recorded b1 on Sunday, the first day of the week
        sunday = clock.today() - timedelta(days=1)
        await store.submit_completion(
            PLAYER_ID, ActionKind.DAILY_BOOST, "b1", {"local_date": sunday.isoformat()}
        )

        # Act
        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")
        snapshot = await engine.resync()

        # Assert
        assert result.outcome is AttemptState.CONFLICT_RESOLVED
        assert result.reward == 0
        assert snapshot.completed_boost_ids_this_week == ("b1",)
        assert snapshot.fuel_points == 1
        with pytest.raises(WindowClosedError):
            await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")
        assert store.submit_calls == 2

    async def test_conflict_then_resync_matches_store(self, engine, store, clock):
        await store.submit_completion(
            PLAYER_ID, ActionKind.DAILY_BOOST, "b1", {"local_date": clock.today().isoformat()}
        )
        await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        snapshot = await engine.resync()

        assert snapshot.fuel_points == 1
        assert snapshot.boosts_completed_today == 1


@pytest.mark.unit
class TestRollback:
    async def test_transient_failure_rolls_back(self, engine, store, published):
        # Arrange
        before = engine.get_local_state()
        store.fail_next(TransientStoreError("submit_completion", ConnectionError("offline")))

        # Act
        with pytest.raises(TransientStoreError):
            await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        # Assert
        after = engine.get_local_state()
        assert after.fuel_points == before.fuel_points
        assert after.boosts_completed_today == 0
        assert after.last_occurrence(ActionKind.DAILY_BOOST, "b1") is None
        assert _completion_events(published) == []
        assert await store.list_records(PLAYER_ID) == []

    async def test_rollback_logged_as_retryable_warning(self, engine, store, caplog):
        store.fail_next(TransientStoreError("submit_completion", ConnectionError("offline")))

        with caplog.at_level(logging.DEBUG, logger="fuelpoints.modules.completion.workflow"):
            with pytest.raises(TransientStoreError):
                await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        errors = [r for r in caplog.records if r.getMessage().startswith("Service error")]
        assert len(errors) == 1
        assert errors[0].levelno == logging.WARNING
        assert errors[0].retryable is True
        assert errors[0].severity == "warning"

    async def test_unexpected_failure_logged_as_error(self, engine, store, caplog):
        store.fail_next(RuntimeError("driver bug"))

        with caplog.at_level(logging.DEBUG, logger="fuelpoints.modules.completion.workflow"):
            with pytest.raises(RuntimeError):
                await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        errors = [r for r in caplog.records if r.getMessage().startswith("Service error")]
        assert errors[0].levelno == logging.ERROR
        assert errors[0].retryable is False
        assert engine.get_local_state().fuel_points == 0

    async def test_retry_after_rollback_succeeds(self, engine, store):
        store.fail_next(TransientStoreError("submit_completion"))
        with pytest.raises(TransientStoreError):
            await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        result = await engine.attempt_completion(ActionKind.DAILY_BOOST, "b1")

        assert result.outcome is AttemptState.CONFIRMED


@pytest.mark.unit
class TestFinishedInstances:
    async def test_completed_challenge_rejected_locally(self, engine, store, clock):
        instance = await engine.start_challenge("mb1", verifications_required=1)
        await engine.attempt_completion(
            ActionKind.STANDARD_CHALLENGE_DAILY, instance.instance_id, TWO_ACTIONS
        )
        clock.advance(days=1)

        with pytest.raises(InvariantViolationError):
            await engine.attempt_completion(
                ActionKind.STANDARD_CHALLENGE_DAILY, instance.instance_id, TWO_ACTIONS
            )

        assert store.submit_calls == 1

    async def test_cancelled_elsewhere_reverts_and_marks_finished(self, engine, store):
        quest = await engine.start_quest("quest-a")
        await store.cancel_instance(PLAYER_ID, ActionKind.QUEST_WEEKLY_ACTION, quest.instance_id)
        before = engine.get_local_state().fuel_points

        with pytest.raises(InvariantViolationError):
            await engine.attempt_completion(ActionKind.QUEST_WEEKLY_ACTION, quest.instance_id, 0)

        snapshot = engine.get_local_state()
        assert snapshot.fuel_points == before
        assert snapshot.instance(ActionKind.QUEST_WEEKLY_ACTION, quest.instance_id).status.is_finished


@pytest.mark.unit
class TestLocalRejections:
    async def test_boost_quota_rejected_before_store(self, engine, store):
        for boost in ("b1", "b2", "b3"):
            await engine.attempt_completion(ActionKind.DAILY_BOOST, boost)

        with pytest.raises(ValidationError) as exc_info:
            await engine.attempt_completion(ActionKind.DAILY_BOOST, "b4")

        assert exc_info.value.field == "boosts"
        assert store.submit_calls == 3

    async def test_custom_selection_below_minimum_records_nothing(self, engine, store):
        instance = await engine.create_custom_challenge(
            ["Read", "Stretch", "No screens"], name="Evenings", daily_minimum=2
        )
        before = engine.get_local_state()

        with pytest.raises(ValidationError):
            await engine.attempt_completion(
                ActionKind.CUSTOM_CHALLENGE_DAILY, instance.instance_id, [0]
            )

        assert store.submit_calls == 0
        assert await store.list_records(PLAYER_ID) == []
        assert engine.get_local_state() == before


@pytest.mark.unit
class TestConcurrentAttempts:
    async def test_second_attempt_joins_first(self, engine, store):
        store.latency = 0.01

        first, second = await asyncio.gather(
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b1"),
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b1"),
        )

        assert first.outcome is AttemptState.CONFIRMED
        assert second.outcome is AttemptState.CONFLICT_RESOLVED
        assert second.reward == 0
        assert store.submit_calls == 1
        assert engine.get_local_state().fuel_points == 1

    async def test_joiner_sees_first_attempts_error(self, engine, store):
        store.latency = 0.01
        store.fail_next(TransientStoreError("submit_completion"))

        results = await asyncio.gather(
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b1"),
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b1"),
            return_exceptions=True,
        )

        assert all(isinstance(r, TransientStoreError) for r in results)
        assert not engine.workflow.is_in_flight(ActionKind.DAILY_BOOST, "b1")

    async def test_different_streams_run_independently(self, engine, store):
        store.latency = 0.01

        results = await asyncio.gather(
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b1"),
            engine.attempt_completion(ActionKind.DAILY_BOOST, "b2"),
        )

        assert [r.outcome for r in results] == [AttemptState.CONFIRMED] * 2
        assert engine.get_local_state().boosts_completed_today == 2
