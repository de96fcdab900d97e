"""
Health assessment input and result models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from fuelpoints.modules.shared.exceptions import ValidationError
from fuelpoints.modules.shared.formulas import HEALTH_CATEGORIES, health_score


@dataclass(frozen=True)
class HealthBounds:
    lifespan_min: float = 50
    lifespan_max: float = 200
    score_min: float = 1
    score_max: float = 10


@dataclass(frozen=True)
class HealthAssessmentInput:
    """
    One reassessment submission.

    Bounds: lifespan in [50, 200], healthspan in [50, lifespan] and every
    provided category score in [1, 10].
    """

    expected_lifespan: float
    expected_healthspan: float
    category_scores: Dict[str, Optional[float]] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "HealthAssessmentInput":
        try:
            lifespan = float(payload["expected_lifespan"])
            healthspan = float(payload["expected_healthspan"])
        except KeyError as exc:
            raise ValidationError(str(exc.args[0]), "value is required") from None
        except (TypeError, ValueError):
            raise ValidationError("expected_lifespan", "must be a number") from None

        scores = payload.get("category_scores") or {}
        if not isinstance(scores, Mapping):
            raise ValidationError("category_scores", "must be a mapping of category to score")
        return cls(
            expected_lifespan=lifespan,
            expected_healthspan=healthspan,
            category_scores={str(k): v for k, v in scores.items()},
        )

    def validate(self, bounds: HealthBounds = HealthBounds()) -> None:
        """
        Raises
        ------
        ValidationError
            On the first bound that does not hold.
        """
        if not bounds.lifespan_min <= self.expected_lifespan <= bounds.lifespan_max:
            raise ValidationError(
                "expected_lifespan",
                f"must be between {bounds.lifespan_min:g} and {bounds.lifespan_max:g}",
            )
        if not bounds.lifespan_min <= self.expected_healthspan <= self.expected_lifespan:
            raise ValidationError(
                "expected_healthspan",
                f"must be between {bounds.lifespan_min:g} and the expected lifespan",
            )
        for name, score in self.category_scores.items():
            if name not in HEALTH_CATEGORIES:
                raise ValidationError("category_scores", f"unknown category {name!r}")
            if score is None:
                continue
            if not bounds.score_min <= float(score) <= bounds.score_max:
                raise ValidationError(
                    name,
                    f"score must be between {bounds.score_min:g} and {bounds.score_max:g}",
                )

    def score(self, weights: Optional[Mapping[str, float]] = None) -> float:
        return health_score(self.category_scores, weights)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "expected_lifespan": self.expected_lifespan,
            "expected_healthspan": self.expected_healthspan,
            "category_scores": dict(self.category_scores),
        }
