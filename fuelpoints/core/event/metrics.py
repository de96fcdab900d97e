"""
Metrics for the update event bus.

Mutable recorder used from a single event loop, plus an immutable
snapshot for introspection and tests.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EventMetrics:
    """
    Immutable snapshot of event bus metrics.

    Attributes
    ----------
    events_published:
        Mapping of event kind (or ``"none"``) to publish counts.
    listener_errors:
        Mapping of event kind to listener error counts.
    total_listeners:
        Current number of registered listeners.
    """

    events_published: dict[str, int] = field(default_factory=dict)
    listener_errors: dict[str, int] = field(default_factory=dict)
    total_listeners: int = 0

    def get_summary(self) -> dict[str, Any]:
        total_events = sum(self.events_published.values())
        total_errors = sum(self.listener_errors.values())
        error_rate = (total_errors / max(1, total_events)) * 100.0

        return {
            "total_events_published": total_events,
            "events_by_kind": dict(self.events_published),
            "total_errors": total_errors,
            "errors_by_kind": dict(self.listener_errors),
            "total_listeners": self.total_listeners,
            "error_rate": round(error_rate, 2),
        }


class EventMetricsRecorder:
    def __init__(self) -> None:
        self._published: defaultdict[str, int] = defaultdict(int)
        self._errors: defaultdict[str, int] = defaultdict(int)
        self._listener_count = 0

    def record_publish(self, key: str) -> None:
        self._published[key] += 1

    def record_error(self, key: str) -> None:
        self._errors[key] += 1

    def adjust_listener_count(self, delta: int) -> None:
        self._listener_count = max(0, self._listener_count + delta)

    def reset_listener_count(self) -> None:
        self._listener_count = 0

    def snapshot(self) -> EventMetrics:
        return EventMetrics(
            events_published=dict(self._published),
            listener_errors=dict(self._errors),
            total_listeners=self._listener_count,
        )
