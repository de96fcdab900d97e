"""
Player domain model.

Purpose
-------
Rich model of a player's progression: lifetime Fuel Points, level, burn
streak and days since the last FP-earning day.

Responsibilities
----------------
- Credit FP from accepted completions
- Recompute the level idempotently (never double-increments)
- Close out a calendar day: extend or reset the streak and pay tier bonuses

Non-Responsibilities
--------------------
- Persistence (handled by the completion stores)
- Gating windows (handled by the store rules and workflow policies)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from fuelpoints.domain.models.base import (
    AggregateRoot,
    validate_non_negative,
    validate_positive,
)
from fuelpoints.modules.shared.formulas import (
    level_for_lifetime_fp,
    level_threshold,
    streak_bonus_for_change,
)


@dataclass(frozen=True)
class PlayerState:
    """Authoritative player counters as reported by a store."""

    player_id: str
    fuel_points: int
    level: int
    burn_streak: int
    days_since_last_fuel_points: int

    @property
    def next_level_threshold(self) -> int:
        return level_threshold(self.level)


@dataclass(frozen=True)
class LevelUpResult:
    level_changed: bool
    new_level: int
    previous_level: int


@dataclass(frozen=True)
class RolloverResult:
    day: date
    applied: bool
    burn_streak: int
    streak_bonus: int
    days_since_last_fuel_points: int


class Player(AggregateRoot):
    """
    Player progression aggregate.

    Usage Example
    -------------
    >>> player = Player("p1", fuel_points=19)
    >>> player.credit(1, on=date(2024, 1, 1))
    >>> player.recompute_level().new_level
    2
    >>> player.recompute_level().level_changed
    False
    """

    def __init__(
        self,
        player_id: str,
        fuel_points: int = 0,
        level: int = 1,
        burn_streak: int = 0,
        days_since_last_fuel_points: int = 0,
        last_fuel_points_on: Optional[date] = None,
        last_rollover_on: Optional[date] = None,
    ) -> None:
        super().__init__(player_id)
        validate_non_negative(fuel_points, "fuel_points")
        validate_non_negative(burn_streak, "burn_streak")
        validate_non_negative(days_since_last_fuel_points, "days_since_last_fuel_points")
        validate_positive(level, "level")

        self.fuel_points = fuel_points
        self.level = level
        self.burn_streak = burn_streak
        self.days_since_last_fuel_points = days_since_last_fuel_points
        self.last_fuel_points_on = last_fuel_points_on
        self.last_rollover_on = last_rollover_on

    # ------------------------------------------------------------------ #
    # Business methods
    # ------------------------------------------------------------------ #

    def credit(self, amount: int, on: date) -> None:
        """Add FP earned on local day `on`. Zero credits do not count as activity."""
        validate_non_negative(amount, "amount")
        if amount == 0:
            return
        self.fuel_points += amount
        self.last_fuel_points_on = on
        self.days_since_last_fuel_points = 0
        self.add_domain_event(
            "player.fp_credited",
            {"player_id": self.id, "amount": amount, "fuel_points": self.fuel_points},
        )

    def recompute_level(self) -> LevelUpResult:
        """
        Raise the level to match lifetime FP. Never lowers it, and repeating
        the call with unchanged FP is a no-op.
        """
        previous = self.level
        target = level_for_lifetime_fp(self.fuel_points)
        if target <= previous:
            return LevelUpResult(level_changed=False, new_level=previous, previous_level=previous)

        self.level = target
        self.add_domain_event(
            "player.leveled_up",
            {"player_id": self.id, "old_level": previous, "new_level": target},
        )
        return LevelUpResult(level_changed=True, new_level=target, previous_level=previous)

    def roll_over(self, day: date) -> RolloverResult:
        """
        Close out local day `day`.

        A day with FP extends the streak and pays the tier bonus when the new
        streak enters a higher tier; a day without FP resets the streak.
        Each day is applied at most once; earlier days are ignored.
        """
        if self.last_rollover_on is not None and day <= self.last_rollover_on:
            return RolloverResult(
                day=day,
                applied=False,
                burn_streak=self.burn_streak,
                streak_bonus=0,
                days_since_last_fuel_points=self.days_since_last_fuel_points,
            )

        previous = self.burn_streak
        bonus = 0
        if self.last_fuel_points_on == day:
            self.burn_streak += 1
            bonus = streak_bonus_for_change(previous, self.burn_streak)
            if bonus:
                self.fuel_points += bonus
        else:
            self.burn_streak = 0
            self.days_since_last_fuel_points += 1

        self.last_rollover_on = day
        if self.burn_streak != previous:
            self.add_domain_event(
                "player.streak_changed",
                {
                    "player_id": self.id,
                    "old_streak": previous,
                    "new_streak": self.burn_streak,
                    "bonus": bonus,
                },
            )

        return RolloverResult(
            day=day,
            applied=True,
            burn_streak=self.burn_streak,
            streak_bonus=bonus,
            days_since_last_fuel_points=self.days_since_last_fuel_points,
        )

    def to_state(self) -> PlayerState:
        return PlayerState(
            player_id=self.id,
            fuel_points=self.fuel_points,
            level=self.level,
            burn_streak=self.burn_streak,
            days_since_last_fuel_points=self.days_since_last_fuel_points,
        )
