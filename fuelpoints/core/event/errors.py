"""
Listener error isolation for the update event bus.

A failing listener is logged and counted; it never breaks delivery to the
remaining listeners and never propagates into the publishing workflow.
"""

from __future__ import annotations

from logging import Logger
from typing import Optional

from fuelpoints.core.event.metrics import EventMetricsRecorder
from fuelpoints.core.event.types import EventListener


def handle_listener_error(
    *,
    logger: Logger,
    event_key: str,
    listener: EventListener,
    exc: BaseException,
    metrics: Optional[EventMetricsRecorder],
) -> None:
    """
    Log a listener failure and update metrics. Never raises.

    Parameters
    ----------
    logger:
        Logger instance to use for error logging.
    event_key:
        Metrics key of the event being delivered (its action kind).
    listener:
        The listener that raised.
    exc:
        The exception that was raised.
    metrics:
        Optional recorder to update.
    """
    if metrics is not None:
        metrics.record_error(event_key)

    logger.error(
        "UpdateEventBus listener error",
        extra={
            "event_kind": event_key,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )
