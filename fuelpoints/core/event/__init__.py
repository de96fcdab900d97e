"""
Update event bus.

One logical channel carrying `UpdateEvent` payloads from the completion
workflow to display and resync subscribers.
"""

from fuelpoints.core.event.bus import UpdateEventBus, Unsubscribe
from fuelpoints.core.event.debounce import DebouncedResync
from fuelpoints.core.event.metrics import EventMetrics, EventMetricsRecorder
from fuelpoints.core.event.registry import ListenerRegistry
from fuelpoints.core.event.types import (
    CallbackType,
    EventListener,
    ListenerPriority,
    UpdateEvent,
)

__all__ = [
    "UpdateEventBus",
    "Unsubscribe",
    "DebouncedResync",
    "EventMetrics",
    "EventMetricsRecorder",
    "ListenerRegistry",
    "CallbackType",
    "EventListener",
    "ListenerPriority",
    "UpdateEvent",
]
