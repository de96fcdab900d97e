"""
Unit Tests for Player Domain Model
==================================

Purpose
-------
Test the progression rules in the Player aggregate without a store.

Test Coverage
-------------
- Construction validation
- FP credit and days-since tracking
- Idempotent level recomputation
- Day rollover: streak extension, reset and tier bonuses
- Domain event emission

Testing Strategy
----------------
- Unit tests (fast, no store)
- AAA pattern (Arrange, Act, Assert)
- Test one behavior per test
"""

from datetime import date, timedelta

import pytest

from fuelpoints.domain.models import Player
from fuelpoints.domain.models.base import DomainValidationError
from tests.conftest import assert_domain_event_emitted, get_domain_event_payload

DAY = date(2024, 3, 4)


def _streak_of(days: int) -> Player:
    """Player whose streak has just reached `days` with FP on every day."""
    player = Player("p1")
    for offset in range(days):
        day = DAY + timedelta(days=offset)
        player.credit(1, on=day)
        player.roll_over(day)
    return player


# ============================================================================
# CONSTRUCTION
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerConstruction:
    def test_new_player_starts_at_level_one(self):
        player = Player("p1")

        assert player.fuel_points == 0
        assert player.level == 1
        assert player.burn_streak == 0
        assert player.to_state().next_level_threshold == 20

    def test_negative_fuel_points_rejected(self):
        with pytest.raises(DomainValidationError) as exc_info:
            Player("p1", fuel_points=-1)

        assert exc_info.value.field == "fuel_points"

    def test_level_must_be_positive(self):
        with pytest.raises(DomainValidationError):
            Player("p1", level=0)


# ============================================================================
# CREDIT & LEVELS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerCredit:
    def test_credit_adds_fp_and_resets_days_since(self):
        player = Player("p1", days_since_last_fuel_points=4)

        player.credit(10, on=DAY)

        assert player.fuel_points == 10
        assert player.days_since_last_fuel_points == 0
        assert player.last_fuel_points_on == DAY
        assert assert_domain_event_emitted(player, "player.fp_credited")

    def test_zero_credit_is_not_activity(self):
        """Conflict resolutions credit 0 and must not touch the streak inputs."""
        player = Player("p1", days_since_last_fuel_points=2)

        player.credit(0, on=DAY)

        assert player.days_since_last_fuel_points == 2
        assert player.last_fuel_points_on is None
        assert player.get_pending_events() == []

    def test_negative_credit_rejected(self):
        with pytest.raises(DomainValidationError):
            Player("p1").credit(-5, on=DAY)


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerLevelUp:
    def test_crossing_threshold_levels_up_exactly_once(self):
        """19 FP + 1 FP at level 1 reaches level 2 and shows the 28 FP threshold."""
        # Arrange
        player = Player("p1", fuel_points=19)
        player.credit(1, on=DAY)

        # Act
        first = player.recompute_level()
        second = player.recompute_level()

        # Assert
        assert first.level_changed is True
        assert first.new_level == 2
        assert second.level_changed is False
        assert player.level == 2
        assert player.to_state().next_level_threshold == 28
        payload = get_domain_event_payload(player, "player.leveled_up")
        assert payload == {"player_id": "p1", "old_level": 1, "new_level": 2}

    def test_below_threshold_is_noop(self):
        player = Player("p1", fuel_points=19)

        result = player.recompute_level()

        assert result.level_changed is False
        assert player.level == 1

    def test_large_credit_can_skip_levels(self):
        player = Player("p1", fuel_points=48)

        result = player.recompute_level()

        assert result.new_level == 3
        assert result.previous_level == 1

    def test_level_never_decreases(self):
        player = Player("p1", fuel_points=0, level=4)

        result = player.recompute_level()

        assert result.level_changed is False
        assert player.level == 4


# ============================================================================
# ROLLOVER
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPlayerRollover:
    def test_day_with_fp_extends_streak(self):
        player = Player("p1")
        player.credit(1, on=DAY)

        result = player.roll_over(DAY)

        assert result.applied is True
        assert result.burn_streak == 1
        assert result.streak_bonus == 0

    def test_day_without_fp_resets_streak(self):
        player = Player("p1", burn_streak=5, last_fuel_points_on=DAY - timedelta(days=1))

        result = player.roll_over(DAY)

        assert result.burn_streak == 0
        assert player.days_since_last_fuel_points == 1
        assert assert_domain_event_emitted(player, "player.streak_changed")

    @pytest.mark.parametrize(
        ("days", "expected_bonus"),
        [(2, 0), (3, 5), (6, 0), (7, 10), (20, 0), (21, 100)],
    )
    def test_tier_bonus_paid_when_entering_tier(self, days, expected_bonus):
        player = _streak_of(days - 1)
        last_day = DAY + timedelta(days=days - 1)
        player.credit(1, on=last_day)

        result = player.roll_over(last_day)

        assert result.burn_streak == days
        assert result.streak_bonus == expected_bonus

    def test_each_day_applies_once(self):
        player = Player("p1")
        player.credit(1, on=DAY)
        player.roll_over(DAY)

        repeat = player.roll_over(DAY)
        earlier = player.roll_over(DAY - timedelta(days=1))

        assert repeat.applied is False
        assert earlier.applied is False
        assert player.burn_streak == 1

    def test_streak_bonus_is_credited(self):
        player = _streak_of(2)
        third = DAY + timedelta(days=2)
        player.credit(1, on=third)
        before = player.fuel_points

        player.roll_over(third)

        assert player.fuel_points == before + 5
