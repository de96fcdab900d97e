"""
Listener registry for the single update channel.

Not thread-safe. Designed for single-threaded asyncio usage where all
modifications occur on the same event loop.
"""

from __future__ import annotations

from fuelpoints.core.event.types import EventListener


class ListenerRegistry:
    """
    Ordered storage for listeners on the update channel.

    Examples
    --------
    >>> registry = ListenerRegistry()
    >>> registry.add_listener(listener, allow_duplicates=False)
    True
    >>> [lst.identifier for lst in registry.extract_listeners()]
    ['app.on_update@7f']
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener, *, allow_duplicates: bool) -> bool:
        """
        Register a listener.

        Returns
        -------
        bool:
            True if added, False if a listener with the same identifier
            already exists and duplicates are not allowed.
        """
        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in self._listeners
        ):
            return False

        self._listeners.append(listener)
        return True

    def remove_listener(self, identifier: str) -> bool:
        """Remove every listener with `identifier`. Returns True if any was removed."""
        before = len(self._listeners)
        self._listeners = [lst for lst in self._listeners if lst.identifier != identifier]
        return len(self._listeners) != before

    def clear_all(self) -> int:
        total = len(self._listeners)
        self._listeners = []
        return total

    def extract_listeners(self) -> list[EventListener]:
        """
        Collect every listener, pruning once=True listeners in the same step.

        Returned list is sorted by (priority, registration order) for
        deterministic delivery.
        """
        result = list(self._listeners)
        self._listeners = [lst for lst in self._listeners if not lst.once]
        # sort is stable so registration order breaks ties
        result.sort(key=lambda lst: lst.priority.value)
        return result

    def __len__(self) -> int:
        return len(self._listeners)
