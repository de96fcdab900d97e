"""
Core event types for the update event bus.

Purpose
-------
Provides the typed payload broadcast after every completion attempt, the
listener priority enumeration and the listener record stored by the registry.

Design Decisions
----------------
- **UpdateEvent as frozen dataclass**: one typed payload on one logical
  channel. It is a signal to resync, not a second source of truth; only
  `fp_earned` is meant to be read once for celebratory display.
- **ListenerPriority enum**: explicit ordering with numeric values so
  display listeners can run before resync schedulers.
- **CallbackType union**: sync callbacks run inline during `publish`,
  coroutine callbacks are scheduled on the running loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union


@dataclass(frozen=True, slots=True)
class UpdateEvent:
    """
    Notification that player state changed.

    Attributes
    ----------
    fp_earned:
        Authoritative reward credited by the attempt; 0 for conflicts.
    kind:
        Action kind value (e.g. ``"daily_boost"``), if the event came from
        a completion attempt.
    instance_id:
        Parent challenge/quest instance, or the boost id for boosts.
    parent_completed:
        True when the attempt also completed its parent challenge or quest.
    conflict:
        True when the attempt resolved as an already-recorded duplicate.
    source:
        What produced the event: ``"completion"``, ``"lifecycle"``,
        ``"level_up"``, ``"rollover"`` or
        ``"resync"``.
    """

    fp_earned: int = 0
    kind: Optional[str] = None
    instance_id: Optional[str] = None
    parent_completed: bool = False
    conflict: bool = False
    source: str = "completion"
    occurred_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fp_earned": self.fp_earned,
            "kind": self.kind,
            "instance_id": self.instance_id,
            "parent_completed": self.parent_completed,
            "conflict": self.conflict,
            "source": self.source,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            **self.extra,
        }


class ListenerPriority(Enum):
    """
    Priority levels for event listeners (lower value runs earlier).

    Values
    ------
    HIGH (10):
        Display updates that must see the event before anything else.
    NORMAL (50):
        Default tier.
    LOW (100):
        Background reactions such as debounced resync scheduling.
    """

    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[UpdateEvent], Any],
    Callable[[UpdateEvent], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered listener.

    Attributes
    ----------
    callback:
        Sync or async callable invoked with the UpdateEvent.
    priority:
        Execution order tier.
    identifier:
        Unique identifier used for unsubscription and deduplication.
    once:
        If True, the listener is removed before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """
        Create a listener, generating an identifier from callback metadata
        and the bound object (so two instances of one class never collide).
        """
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            owner = getattr(callback, "__self__", callback)
            identifier = f"{module}.{qualname}@{id(owner):x}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
