"""
Unit tests for the per-kind completion policies.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.domain.models import ActionKind, InstanceState, InstanceStatus, PlayerState
from fuelpoints.modules.client_state import OptimisticClientState
from fuelpoints.modules.completion import build_policies
from fuelpoints.modules.completion.policies import _ChallengeDailyPolicy
from fuelpoints.modules.ledger.interface import TodayStats
from fuelpoints.modules.shared.exceptions import (
    InvariantViolationError,
    ValidationError,
    WindowClosedError,
)

TODAY = date(2024, 3, 4)
NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
ASSESSMENT = {
    "expected_lifespan": 90,
    "expected_healthspan": 75,
    "category_scores": {"mindset": 8, "sleep": 7},
}


def _instance(kind, instance_id, *, progress=0, required=3, daily_minimum=None, status=InstanceStatus.ACTIVE):
    return InstanceState(
        kind=kind,
        instance_id=instance_id,
        player_id="p1",
        parent_id=None,
        status=status,
        progress_count=progress,
        required_count=required,
        daily_reward=10,
        completion_reward=50,
        daily_minimum=daily_minimum,
    )


@pytest.fixture
def policies():
    return build_policies(ConfigManager)


@pytest.fixture
def state():
    client = OptimisticClientState("p1", today=TODAY)
    client.apply_authoritative(
        PlayerState("p1", 0, 1, 0, 0),
        TodayStats(day=TODAY),
        {},
        [
            _instance(ActionKind.STANDARD_CHALLENGE_DAILY, "c1", progress=2),
            _instance(ActionKind.CUSTOM_CHALLENGE_DAILY, "cc1", required=21, daily_minimum=2),
            _instance(ActionKind.QUEST_WEEKLY_ACTION, "q1", required=12),
            _instance(ActionKind.STANDARD_CHALLENGE_DAILY, "done", status=InstanceStatus.COMPLETED),
        ],
    )
    return client


def _occur(state, kind, instance_id, at):
    mutation = state.apply_optimistic((kind, instance_id), local_date=at.date(), occurred_at=at)
    state.settle(mutation)


@pytest.mark.unit
class TestDailyBoostPolicy:
    def test_default_reward_from_config(self, policies, state):
        policy = policies[ActionKind.DAILY_BOOST]

        assert policy.expected_reward(state.snapshot(), "b1", None) == 1

    def test_reward_read_from_boost_table(self, policies, state):
        ConfigManager.set("boosts.fp_by_boost", {"cold-plunge": 3})
        policy = policies[ActionKind.DAILY_BOOST]

        assert policy.expected_reward(state.snapshot(), "cold-plunge", None) == 3
        assert policy.expected_reward(state.snapshot(), "b1", None) == 1

    def test_selection_cannot_set_reward(self, policies, state):
        policy = policies[ActionKind.DAILY_BOOST]

        assert policy.expected_reward(state.snapshot(), "b1", {"fp": 4}) == 1
        assert policy.build_payload({"fp": 4}, TODAY) == {"local_date": "2024-03-04"}

    def test_boost_needs_instance_id(self, policies, state):
        with pytest.raises(ValidationError) as exc_info:
            policies[ActionKind.DAILY_BOOST].validate(state.snapshot(), None, None, NOW)

        assert exc_info.value.field == "instance_id"

    def test_same_boost_twice_same_day_closed(self, policies, state):
        _occur(state, ActionKind.DAILY_BOOST, "b1", NOW)

        with pytest.raises(WindowClosedError):
            policies[ActionKind.DAILY_BOOST].validate(state.snapshot(), "b1", None, NOW)

    def test_boost_done_this_week_locked_until_reset(self, policies, state):
        # Arrange: b1 done on Sunday 2024-03-03, the first day of this week
        state.apply_authoritative(
            PlayerState("p1", 1, 1, 0, 0),
            TodayStats(day=TODAY, completed_boost_ids_this_week=("b1",)),
        )

        # Act
        with pytest.raises(WindowClosedError) as exc_info:
            policies[ActionKind.DAILY_BOOST].validate(state.snapshot(), "b1", None, NOW)

        # Assert: Monday, six days until the Sunday reset
        assert exc_info.value.days_remaining == 6
        policies[ActionKind.DAILY_BOOST].validate(state.snapshot(), "b2", None, NOW)

    def test_boost_pool_reopens_on_reset_weekday(self, policies, state):
        state.apply_optimistic(
            (ActionKind.DAILY_BOOST, "b1"),
            local_date=TODAY,
            occurred_at=NOW,
            counts_as_boost=True,
        )
        saturday = TODAY + timedelta(days=5)
        state.ensure_day(saturday)
        with pytest.raises(WindowClosedError):
            policies[ActionKind.DAILY_BOOST].validate(
                state.snapshot(), "b1", None, NOW + timedelta(days=5)
            )

        state.ensure_day(saturday + timedelta(days=1))

        policies[ActionKind.DAILY_BOOST].validate(
            state.snapshot(), "b1", None, NOW + timedelta(days=6)
        )

    def test_quota_exhausted_rejected(self, policies, state):
        for index in range(3):
            state.apply_optimistic(
                (ActionKind.DAILY_BOOST, f"b{index}"),
                local_date=TODAY,
                occurred_at=NOW,
                counts_as_boost=True,
            )

        with pytest.raises(ValidationError) as exc_info:
            policies[ActionKind.DAILY_BOOST].validate(state.snapshot(), "b9", None, NOW)

        assert exc_info.value.field == "boosts"

    def test_payload_carries_local_date(self, policies):
        payload = policies[ActionKind.DAILY_BOOST].build_payload(None, TODAY)

        assert payload == {"local_date": "2024-03-04"}


@pytest.mark.unit
class TestChallengePolicies:
    def test_standard_needs_two_actions(self, policies, state):
        with pytest.raises(ValidationError) as exc_info:
            policies[ActionKind.STANDARD_CHALLENGE_DAILY].validate(
                state.snapshot(), "c1", ["walk"], NOW
            )

        assert exc_info.value.field == "selection"

    def test_duplicate_selections_count_once(self, policies, state):
        with pytest.raises(ValidationError):
            policies[ActionKind.STANDARD_CHALLENGE_DAILY].validate(
                state.snapshot(), "c1", ["walk", "walk"], NOW
            )

    def test_string_selection_rejected(self, policies, state):
        with pytest.raises(ValidationError):
            policies[ActionKind.STANDARD_CHALLENGE_DAILY].validate(
                state.snapshot(), "c1", "walk,read", NOW
            )

    def test_last_verification_expects_daily_plus_bonus(self, policies, state):
        reward = policies[ActionKind.STANDARD_CHALLENGE_DAILY].expected_reward(
            state.snapshot(), "c1", ["walk", "read"]
        )

        assert reward == 60

    def test_finished_instance_is_invariant_violation(self, policies, state):
        with pytest.raises(InvariantViolationError):
            policies[ActionKind.STANDARD_CHALLENGE_DAILY].validate(
                state.snapshot(), "done", ["walk", "read"], NOW
            )

    def test_custom_uses_daily_minimum(self, policies, state):
        policy = policies[ActionKind.CUSTOM_CHALLENGE_DAILY]

        with pytest.raises(ValidationError):
            policy.validate(state.snapshot(), "cc1", [0], NOW)
        policy.validate(state.snapshot(), "cc1", [0, 1], NOW)

    def test_challenge_payload_lists_actions(self, policies):
        payload = policies[ActionKind.CUSTOM_CHALLENGE_DAILY].build_payload([0, 2], TODAY)

        assert payload["selected_actions"] == [0, 2]

    def test_challenge_policy_must_define_minimum(self):
        class NoMinimumPolicy(_ChallengeDailyPolicy):
            kind = ActionKind.STANDARD_CHALLENGE_DAILY

        with pytest.raises(TypeError):
            NoMinimumPolicy()


@pytest.mark.unit
class TestQuestWeeklyPolicy:
    @pytest.mark.parametrize("selection", [1, [1]])
    def test_single_action_accepted(self, policies, state, selection):
        policies[ActionKind.QUEST_WEEKLY_ACTION].validate(state.snapshot(), "q1", selection, NOW)

    @pytest.mark.parametrize("selection", [None, [], [0, 1], ["x"], -1])
    def test_bad_selection_rejected(self, policies, state, selection):
        with pytest.raises(ValidationError):
            policies[ActionKind.QUEST_WEEKLY_ACTION].validate(
                state.snapshot(), "q1", selection, NOW
            )

    def test_window_closed_within_seven_days(self, policies, state):
        _occur(state, ActionKind.QUEST_WEEKLY_ACTION, "q1", NOW - timedelta(days=6, hours=23))

        with pytest.raises(WindowClosedError) as exc_info:
            policies[ActionKind.QUEST_WEEKLY_ACTION].validate(state.snapshot(), "q1", 0, NOW)

        assert exc_info.value.days_remaining == 1

    def test_window_open_at_seven_days(self, policies, state):
        _occur(state, ActionKind.QUEST_WEEKLY_ACTION, "q1", NOW - timedelta(days=7))

        policies[ActionKind.QUEST_WEEKLY_ACTION].validate(state.snapshot(), "q1", 0, NOW)


@pytest.mark.unit
class TestHealthReassessmentPolicy:
    def test_valid_assessment(self, policies, state):
        policy = policies[ActionKind.HEALTH_REASSESSMENT]

        policy.validate(state.snapshot(), None, ASSESSMENT, NOW)

        assert policy.expected_reward(state.snapshot(), None, ASSESSMENT) == 2

    def test_non_mapping_rejected(self, policies, state):
        with pytest.raises(ValidationError):
            policies[ActionKind.HEALTH_REASSESSMENT].validate(state.snapshot(), None, [90], NOW)

    def test_thirty_day_window(self, policies, state):
        _occur(state, ActionKind.HEALTH_REASSESSMENT, None, NOW - timedelta(days=10))

        with pytest.raises(WindowClosedError) as exc_info:
            policies[ActionKind.HEALTH_REASSESSMENT].validate(
                state.snapshot(), None, ASSESSMENT, NOW
            )

        assert exc_info.value.days_remaining == 20

    def test_configured_lifespan_bounds(self, policies, state):
        ConfigManager.set("health.lifespan_max", 80)

        with pytest.raises(ValidationError) as exc_info:
            policies[ActionKind.HEALTH_REASSESSMENT].validate(
                state.snapshot(), None, ASSESSMENT, NOW
            )

        assert exc_info.value.field == "expected_lifespan"
