"""
Fuel Points progression formulas

Purpose
-------
Pure calculation functions for progression: the geometric level curve,
tiered streak bonuses, streak milestone info, weighted health scores and
the health reassessment bonus.

Design Notes
------------
All formulas:
- Accept parameters explicitly
- Return calculated values
- Have no external dependencies (no config, no store, no clock)
- Round half away from zero for non-negative inputs, the rounding players
  have always seen (``round_half_up``), never Python's banker's rounding

Usage
-----
    from fuelpoints.modules.shared.formulas import level_threshold, streak_bonus

    points_to_finish_level = level_threshold(3)
    bonus = streak_bonus(7)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Optional

LEVEL_BASE_POINTS = 20
LEVEL_GROWTH_FACTOR = 1.414

# (minimum streak, bonus) from the highest tier down
STREAK_BONUS_TIERS = ((21, 100), (7, 10), (3, 5))

HEALTH_CATEGORIES = ("mindset", "sleep", "exercise", "nutrition", "biohacking")
DEFAULT_CATEGORY_WEIGHT = 0.2
DEFAULT_CATEGORY_SCORE = 7.8
HEALTH_BONUS_RATIO = 0.1


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves rounding up.

    Example:
        >>> round_half_up(2.5), round(2.5)
        (3, 2)
    """
    return int(math.floor(value + 0.5))


def round_one_decimal(value: float) -> float:
    """
    Round to one decimal place, halves rounding up.

    Example:
        >>> round_one_decimal(7.26)
        7.3
    """
    return math.floor(value * 10 + 0.5) / 10


# ============================================================================
# Levels
# ============================================================================


def level_threshold(level: int) -> int:
    """
    FP a player must earn during `level` to advance to `level + 1`.

    Formula: round(20 * 1.414 ** (level - 1))

    Args:
        level: Current level (>= 1)

    Returns:
        Points needed to complete that level

    Example:
        >>> level_threshold(1)
        20
        >>> level_threshold(2)
        28
        >>> level_threshold(3)
        40
    """
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return round_half_up(LEVEL_BASE_POINTS * LEVEL_GROWTH_FACTOR ** (level - 1))


def cumulative_fp_for_level(level: int) -> int:
    """
    Lifetime FP needed to reach `level` from level 1.

    Example:
        >>> cumulative_fp_for_level(1)
        0
        >>> cumulative_fp_for_level(2)
        20
        >>> cumulative_fp_for_level(3)
        48
    """
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return sum(level_threshold(i) for i in range(1, level))


def level_for_lifetime_fp(fuel_points: int) -> int:
    """
    Level reached with `fuel_points` lifetime FP: one plus the number of
    fully completed levels.

    Example:
        >>> level_for_lifetime_fp(19)
        1
        >>> level_for_lifetime_fp(20)
        2
        >>> level_for_lifetime_fp(48)
        3
    """
    level = 1
    remaining = max(0, fuel_points)
    while remaining >= level_threshold(level):
        remaining -= level_threshold(level)
        level += 1
    return level


def fp_into_current_level(fuel_points: int) -> int:
    """Lifetime FP beyond the start of the current level (progress bar numerator)."""
    return max(0, fuel_points) - cumulative_fp_for_level(level_for_lifetime_fp(fuel_points))


# ============================================================================
# Streaks
# ============================================================================


def streak_bonus(streak: int) -> int:
    """
    Tiered bonus for a burn streak.

    Tiers: 0 (< 3), 5 (3-6), 10 (7-20), 100 (>= 21).

    Example:
        >>> [streak_bonus(s) for s in (2, 3, 6, 7, 20, 21)]
        [0, 5, 5, 10, 10, 100]
    """
    for minimum, bonus in STREAK_BONUS_TIERS:
        if streak >= minimum:
            return bonus
    return 0


def streak_bonus_for_change(previous: int, current: int) -> int:
    """
    Bonus credited when the streak moves from `previous` to `current`.

    Pays the new tier's value only when the change enters a higher tier;
    tiers are not cumulative, so reaching 21 pays 100 once.

    Example:
        >>> streak_bonus_for_change(2, 3)
        5
        >>> streak_bonus_for_change(3, 4)
        0
        >>> streak_bonus_for_change(20, 21)
        100
    """
    if streak_bonus(current) > streak_bonus(previous):
        return streak_bonus(current)
    return 0


@dataclass(frozen=True)
class StreakMilestone:
    next_milestone: int
    milestone_reward: int
    progress_percent: float


def streak_milestone(streak: int) -> StreakMilestone:
    """
    Next streak milestone, its reward and progress toward it.

    Past 21 days the milestone cycles every 3 days.

    Example:
        >>> streak_milestone(5)
        StreakMilestone(next_milestone=7, milestone_reward=10, progress_percent=71.43)
    """
    streak = max(0, streak)
    if streak < 3:
        next_milestone, reward = 3, 5
    elif streak < 7:
        next_milestone, reward = 7, 10
    elif streak < 21:
        next_milestone, reward = 21, 20
    else:
        return StreakMilestone(
            next_milestone=3,
            milestone_reward=5,
            progress_percent=round((streak % 3) / 3 * 100, 2),
        )

    return StreakMilestone(
        next_milestone=next_milestone,
        milestone_reward=reward,
        progress_percent=round(streak / next_milestone * 100, 2),
    )


# ============================================================================
# Health
# ============================================================================


def health_score(
    category_scores: Mapping[str, Optional[float]],
    weights: Optional[Mapping[str, float]] = None,
) -> float:
    """
    Weighted health score rounded to one decimal.

    Every standard category is included; a missing or None score counts as
    7.8 and an unweighted category gets weight 0.2.

    Args:
        category_scores: Score per category (1-10)
        weights: Optional weight per category

    Example:
        >>> health_score({"mindset": 8, "sleep": 7, "exercise": 9, "nutrition": 6, "biohacking": 5})
        7.0
    """
    weights = weights or {}
    categories = list(HEALTH_CATEGORIES) + [
        name for name in category_scores if name not in HEALTH_CATEGORIES
    ]

    total = 0.0
    for name in categories:
        score = category_scores.get(name)
        if score is None:
            score = DEFAULT_CATEGORY_SCORE
        total += float(score) * float(weights.get(name, DEFAULT_CATEGORY_WEIGHT))
    return round_one_decimal(total)


def health_assessment_bonus(next_level_points: int, ratio: float = HEALTH_BONUS_RATIO) -> int:
    """
    FP bonus for a reassessment: a tenth of the current level's threshold.

    Example:
        >>> health_assessment_bonus(28)
        3
    """
    return round_half_up(next_level_points * ratio)
