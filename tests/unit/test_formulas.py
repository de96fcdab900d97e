"""
Unit tests for progression formulas and time windows.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from fuelpoints.modules.shared.formulas import (
    cumulative_fp_for_level,
    fp_into_current_level,
    health_assessment_bonus,
    health_score,
    level_for_lifetime_fp,
    level_threshold,
    round_half_up,
    streak_bonus,
    streak_bonus_for_change,
    streak_milestone,
)
from fuelpoints.modules.shared.windows import (
    Weekday,
    daily_local_window,
    rolling_window,
    week_start,
    weekly_fixed_day_reset,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class TestLevelCurve:
    """Geometric level thresholds."""

    def test_first_thresholds(self):
        assert [level_threshold(level) for level in (1, 2, 3, 4)] == [20, 28, 40, 57]

    def test_consecutive_ratio_is_growth_factor(self):
        """Threshold(n+1) / threshold(n) stays close to 1.414 for every level."""
        for level in range(5, 40):
            ratio = level_threshold(level + 1) / level_threshold(level)
            assert ratio == pytest.approx(1.414, abs=0.01)

    def test_thresholds_strictly_increase(self):
        thresholds = [level_threshold(level) for level in range(1, 50)]
        assert thresholds == sorted(set(thresholds))

    def test_level_zero_rejected(self):
        with pytest.raises(ValueError):
            level_threshold(0)

    def test_cumulative_and_inverse_agree(self):
        for level in range(1, 30):
            fp = cumulative_fp_for_level(level)
            assert level_for_lifetime_fp(fp) == level
            assert level_for_lifetime_fp(fp - 1) == max(1, level - 1)

    def test_progress_into_level(self):
        assert fp_into_current_level(25) == 5

    def test_rounding_is_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestStreakBonus:
    """Tiered streak bonuses."""

    @pytest.mark.parametrize(
        ("streak", "bonus"),
        [(0, 0), (2, 0), (3, 5), (6, 5), (7, 10), (20, 10), (21, 100), (40, 100)],
    )
    def test_tier_boundaries(self, streak, bonus):
        assert streak_bonus(streak) == bonus

    @pytest.mark.parametrize(
        ("previous", "current", "paid"),
        [(2, 3, 5), (3, 4, 0), (6, 7, 10), (7, 8, 0), (20, 21, 100), (21, 22, 0), (5, 0, 0)],
    )
    def test_bonus_paid_only_on_entering_tier(self, previous, current, paid):
        assert streak_bonus_for_change(previous, current) == paid

    def test_milestone_cycle_after_21(self):
        milestone = streak_milestone(22)

        assert milestone.next_milestone == 3
        assert milestone.milestone_reward == 5
        assert milestone.progress_percent == pytest.approx(33.33)

    def test_milestone_before_first_tier(self):
        assert streak_milestone(1).next_milestone == 3


class TestHealthFormulas:
    def test_bonus_is_tenth_of_threshold(self):
        assert health_assessment_bonus(level_threshold(1)) == 2
        assert health_assessment_bonus(level_threshold(2)) == 3

    def test_custom_weights(self):
        scores = {"mindset": 10, "sleep": 0.0, "exercise": 0.0, "nutrition": 0.0, "biohacking": 0.0}
        assert health_score(scores, {"mindset": 0.5}) == 5.0


class TestDailyWindow:
    def test_no_prior_occurrence_allowed(self):
        assert daily_local_window(None, date(2024, 3, 4)).allowed

    def test_same_day_blocked(self):
        assert not daily_local_window(date(2024, 3, 4), date(2024, 3, 4)).allowed

    def test_next_day_allowed(self):
        assert daily_local_window(date(2024, 3, 3), date(2024, 3, 4)).allowed


class TestRollingWindow:
    def test_open_at_exactly_seven_days(self):
        decision = rolling_window(NOW - timedelta(days=7), NOW, 7)

        assert decision.allowed
        assert decision.days_remaining == 0

    def test_closed_at_six_point_nine_nine_days(self):
        decision = rolling_window(NOW - timedelta(days=6.99), NOW, 7)

        assert not decision.allowed
        assert decision.days_remaining == 1

    def test_thirty_day_window(self):
        assert rolling_window(NOW - timedelta(days=10), NOW, 30).days_remaining == 20

    def test_first_occurrence_allowed(self):
        assert rolling_window(None, NOW, 30).allowed

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError):
            rolling_window(None, NOW, -1)


class TestWeeklyReset:
    def test_days_until_sunday_reset(self):
        assert weekly_fixed_day_reset(date(2024, 3, 4)) == 6  # Monday
        assert weekly_fixed_day_reset(date(2024, 3, 9)) == 1  # Saturday
        assert weekly_fixed_day_reset(date(2024, 3, 10)) == 7  # Sunday

    def test_week_start_is_latest_reset_day(self):
        assert week_start(date(2024, 3, 4)) == date(2024, 3, 3)
        assert week_start(date(2024, 3, 10)) == date(2024, 3, 10)

    def test_other_reset_weekday(self):
        assert weekly_fixed_day_reset(date(2024, 3, 4), Weekday.MONDAY) == 7
        assert week_start(date(2024, 3, 6), Weekday.from_value("monday")) == date(2024, 3, 4)

    def test_unknown_weekday_name(self):
        with pytest.raises(ValueError):
            Weekday.from_value("someday")
