"""
Base domain model classes.

Purpose
-------
Provide the abstractions the progression models build on: entities with
identity, immutable value objects, aggregate roots that record domain
events, and shared validation helpers.

Non-Responsibilities
--------------------
- Persistence (handled by the completion stores)
- Database schema (handled by SQLAlchemy models in the SQL store)
- Workflow orchestration (handled by the completion workflow)

Design Patterns
---------------
- **Entity**: Objects with identity that persist over time (a player, a
  challenge instance)
- **Aggregate Root**: Consistency boundary; a challenge instance owns its
  verification count and status
- **Domain Events**: Record state changes (``challenge.completed``,
  ``player.leveled_up``) for the stores to log or publish
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fuelpoints.modules.shared.exceptions import ValidationError


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A state change that happened inside an aggregate.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "challenge.completed")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Two entities with the same ID are the same entity, even if their
    attributes differ.
    """

    def __init__(self, entity_id: str) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity) or type(self) is not type(other):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Record a domain event to be drained by the store.

        Examples
        --------
        >>> self.add_domain_event("challenge.completed", {
        ...     "instance_id": self.id,
        ...     "completion_bonus": self.completion_bonus,
        ... })
        """
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """Clear and return all domain events recorded since the last clear."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Entry point for all changes to a cluster of domain state.

    Subclasses expose business methods that keep the aggregate's invariants
    and record domain events for significant transitions.
    """


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(ValidationError):
    """
    Raised when domain model validation fails.

    A `ValidationError`, so callers handle model and input validation the
    same way.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(field or "model", message)


def validate_positive(value: int, field_name: str) -> None:
    """
    Raises
    ------
    DomainValidationError
        If value is not strictly positive.
    """
    if value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value}", field=field_name
        )


def validate_non_negative(value: int, field_name: str) -> None:
    """
    Raises
    ------
    DomainValidationError
        If value is negative.
    """
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}", field=field_name
        )


def validate_range(value: float, field_name: str, min_val: float, max_val: float) -> None:
    """
    Raises
    ------
    DomainValidationError
        If value is outside [min_val, max_val].
    """
    if not (min_val <= value <= max_val):
        raise DomainValidationError(
            f"{field_name} must be between {min_val} and {max_val}, got {value}",
            field=field_name,
        )
