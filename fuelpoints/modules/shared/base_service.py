"""
Base Service Foundation

Purpose
-------
Provides the foundational class for the engine's services (completion
workflow, lifecycle). Services implement business logic against an
authoritative store, read tunables from ConfigManager and publish
UpdateEvents for subscribers.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access patterns
- Event emission helpers
- Validation helpers raising domain exceptions

What this class does NOT do:
- Persist anything (that's the CompletionStore's job)
- Contain per-kind gating rules

Usage
-----
    class LifecycleService(BaseService):
        def __init__(self, store, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self.store = store
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Type

from fuelpoints.core.exceptions import (
    ConfigurationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from fuelpoints.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from fuelpoints.core.config.manager import ConfigManager
    from fuelpoints.core.event.bus import UpdateEventBus
    from fuelpoints.core.event.types import UpdateEvent


class BaseService:
    """
    Base class for engine services.

    Args:
        config_manager: Configuration manager (class-level singleton)
        event_bus: Update event bus shared with the engine
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: Type[ConfigManager],
        event_bus: UpdateEventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve configuration value.

        Args:
            key: Configuration key to retrieve
            default: Default value if key not found
            required: If True, raise exception if key missing

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    def emit_event(self, event: UpdateEvent) -> int:
        """
        Publish an update to subscribers.

        Returns:
            Number of listeners the event was delivered to
        """
        return self._events.publish(event)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        """
        Log a service error with full context.

        Retryable errors log at WARNING; anything that should alert logs at
        ERROR.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            **context: Additional context data
        """
        self.log.log(
            logging.ERROR if should_alert(error) else logging.WARNING,
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "severity": get_error_severity(error).value,
                "retryable": is_transient_error(error),
                **context,
            },
        )

    def validate_positive_int(self, value: int, name: str) -> None:
        """
        Raises:
            ValidationError: If value is not a positive integer
        """
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value}")
