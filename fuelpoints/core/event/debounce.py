"""
Debounced authoritative resync for update event subscribers.

A burst of completions inside the debounce window produces exactly one
refetch, scheduled on the trailing edge of the burst.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from fuelpoints.core.event.types import UpdateEvent
from fuelpoints.core.logging.logger import get_logger

logger = get_logger(__name__)

RefetchCallable = Callable[[], Awaitable[Any]]
EventPredicate = Callable[[UpdateEvent], bool]


class DebouncedResync:
    """
    Subscriber helper that coalesces update events into one refetch.

    Usage
    -----
    >>> resync = DebouncedResync(engine.resync, delay_seconds=0.3)
    >>> unsubscribe = bus.subscribe(resync, priority=ListenerPriority.LOW)

    Notes
    -----
    - Each event restarts the timer; the refetch runs `delay_seconds` after
      the last event of a burst.
    - An event arriving while a refetch is running schedules one more
      refetch after it, so no change is missed.
    - Refetch errors are logged and counted, never raised into the bus.
    - `should_refetch` filters events; rejected events are counted but
      never schedule a refetch.
    """

    def __init__(
        self,
        refetch: RefetchCallable,
        delay_seconds: float = 0.3,
        should_refetch: Optional[EventPredicate] = None,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")
        self._refetch = refetch
        self._should_refetch = should_refetch
        self._delay = delay_seconds
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._rerun = False
        self._closed = False

        self.events_seen = 0
        self.refetch_count = 0
        self.error_count = 0

    @property
    def delay_seconds(self) -> float:
        return self._delay

    @property
    def is_pending(self) -> bool:
        return self._handle is not None or (self._task is not None and not self._task.done())

    def __call__(self, event: UpdateEvent) -> None:
        self.events_seen += 1
        if self._closed or (self._should_refetch and not self._should_refetch(event)):
            return
        self._schedule()

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if self._task is not None and not self._task.done():
            self._rerun = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            self._rerun = False
            self.refetch_count += 1
            try:
                await self._refetch()
            except Exception as exc:
                self.error_count += 1
                logger.warning(
                    "Debounced resync failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
            if not self._rerun or self._closed:
                return

    async def flush(self) -> None:
        """Run any pending refetch now and wait for it to finish."""
        if self._handle is not None:
            self._handle.cancel()
            self._fire()
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        """Cancel the pending timer and wait for an in-flight refetch."""
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._task is not None:
            await self._task
