"""
UpdateEventBus: in-process publish/subscribe for player state changes.

Purpose
-------
Broadcast "state changed, here is what changed" notifications from the
completion workflow to display and resync subscribers over one logical
channel.

Responsibilities
----------------
- Register listeners and hand back an unsubscribe callable.
- Deliver each published `UpdateEvent` to every listener in priority order.
- Isolate listener failures (logged and counted, never propagated).
- Track publish/error metrics.

Design Decisions
----------------
- `publish` is synchronous. Sync listeners run inline; coroutine listeners
  are scheduled as tasks on the running loop and tracked until `drain`.
- Subscribers that refetch authoritative state debounce their own reaction
  (see `fuelpoints.core.event.debounce.DebouncedResync`).
- Events are signals to resync, not a second source of truth.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Optional

from fuelpoints.core.event.errors import handle_listener_error
from fuelpoints.core.event.metrics import EventMetrics, EventMetricsRecorder
from fuelpoints.core.event.registry import ListenerRegistry
from fuelpoints.core.event.types import (
    CallbackType,
    EventListener,
    ListenerPriority,
    UpdateEvent,
)
from fuelpoints.core.exceptions import EventBusError
from fuelpoints.core.logging.logger import get_logger

logger = get_logger(__name__)

Unsubscribe = Callable[[], bool]


class UpdateEventBus:
    """
    Single-channel event bus with priority ordering and error isolation.

    Examples
    --------
    >>> bus = UpdateEventBus()
    >>> unsubscribe = bus.subscribe(lambda event: print(event.fp_earned))
    >>> bus.publish(UpdateEvent(fp_earned=10, kind="daily_boost"))
    10
    >>> unsubscribe()
    True
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        metrics: Optional[EventMetricsRecorder] = None,
        *,
        enable_metrics: bool = True,
    ) -> None:
        self._registry = registry or ListenerRegistry()
        self._metrics = metrics or EventMetricsRecorder()
        self._metrics_enabled = enable_metrics
        self._pending: set[asyncio.Task[Any]] = set()
        self._closed = False

        logger.debug(
            "UpdateEventBus initialized",
            extra={"metrics_enabled": self._metrics_enabled},
        )

    # ------------------------------------------------------------------ #
    # Listener Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one positional parameter.

        Raises
        ------
        ValueError:
            If callback signature is invalid.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature; trust the caller.
            return

        params = [
            p
            for p in sig.parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            and p.default is p.empty
        ]
        has_varargs = any(p.kind is p.VAR_POSITIONAL for p in sig.parameters.values())
        if len(params) != 1 and not (has_varargs and len(params) == 0):
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (UpdateEvent), "
                f"got {len(params)} required parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> Unsubscribe:
        """
        Subscribe a callback to the update channel.

        Parameters
        ----------
        callback:
            Sync or async callable taking a single UpdateEvent.
        priority:
            Delivery tier (HIGH before NORMAL before LOW).
        identifier:
            Optional unique identifier. Auto-generated if None.
        once:
            If True, listener is removed before its first execution.
        allow_duplicates:
            If False, a second subscription with the same identifier is ignored.

        Returns
        -------
        Callable[[], bool]:
            Unsubscribe function; returns True the first time it removes
            the listener.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(listener, allow_duplicates=allow_duplicates)

        if added:
            if self._metrics_enabled:
                self._metrics.adjust_listener_count(1)
            logger.debug(
                "UpdateEventBus: subscribed listener",
                extra={
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "UpdateEventBus: duplicate listener prevented",
                extra={"listener_id": listener.identifier},
            )

        def unsubscribe() -> bool:
            return self.unsubscribe(listener.identifier)

        return unsubscribe

    def unsubscribe(self, identifier: str) -> bool:
        removed = self._registry.remove_listener(identifier)

        if removed:
            if self._metrics_enabled:
                self._metrics.adjust_listener_count(-1)
            logger.debug(
                "UpdateEventBus: unsubscribed listener",
                extra={"listener_id": identifier},
            )

        return removed

    def clear(self) -> None:
        """Remove all listeners. Intended for tests and session teardown."""
        total = self._registry.clear_all()
        if self._metrics_enabled:
            self._metrics.reset_listener_count()
        logger.debug(
            "UpdateEventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def publish(self, event: UpdateEvent) -> int:
        """
        Deliver `event` to every listener.

        Sync listeners complete before this returns. Coroutine listeners are
        scheduled on the running loop; when there is no running loop they
        are skipped and counted as errors.

        Returns
        -------
        int:
            Number of listeners the event was delivered or scheduled to.

        Raises
        ------
        EventBusError:
            If the bus has been closed.
        """
        if self._closed:
            raise EventBusError("publish", "bus is closed")

        key = event.kind or "none"
        if self._metrics_enabled:
            self._metrics.record_publish(key)

        listeners = self._registry.extract_listeners()
        if once_count := sum(1 for lst in listeners if lst.once):
            if self._metrics_enabled:
                self._metrics.adjust_listener_count(-once_count)

        logger.debug(
            "UpdateEventBus: publishing event",
            extra={
                "event_kind": key,
                "fp_earned": event.fp_earned,
                "listener_count": len(listeners),
            },
        )

        delivered = 0
        for listener in listeners:
            if self._deliver(listener, event, key):
                delivered += 1
        return delivered

    def _deliver(self, listener: EventListener, event: UpdateEvent, key: str) -> bool:
        metrics = self._metrics if self._metrics_enabled else None
        try:
            result = listener.callback(event)
        except Exception as exc:
            handle_listener_error(
                logger=logger, event_key=key, listener=listener, exc=exc, metrics=metrics
            )
            return False

        if not inspect.isawaitable(result):
            return True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            if inspect.iscoroutine(result):
                result.close()
            handle_listener_error(
                logger=logger, event_key=key, listener=listener, exc=exc, metrics=metrics
            )
            return False

        task = loop.create_task(self._run_async(listener, result, key))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _run_async(self, listener: EventListener, awaitable: Any, key: str) -> None:
        try:
            await awaitable
        except Exception as exc:
            handle_listener_error(
                logger=logger,
                event_key=key,
                listener=listener,
                exc=exc,
                metrics=self._metrics if self._metrics_enabled else None,
            )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait for every scheduled coroutine listener to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Drain pending listeners, drop all subscriptions and refuse new publishes."""
        await self.drain()
        self.clear()
        self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Optional[EventMetrics]:
        if not self._metrics_enabled:
            return None
        return self._metrics.snapshot()

    def get_metrics_summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        return metrics.get_summary() if metrics else {}

    def get_listener_count(self) -> int:
        return len(self._registry)

    def get_pending_task_count(self) -> int:
        return len(self._pending)
