"""
Infrastructure exceptions for the Fuel Points engine.

Purpose
-------
Define the structured exception hierarchy for store-level concerns:
uniqueness conflicts, transient store failures, configuration errors and
event bus failures.

Design Notes
------------
- All infrastructure exceptions inherit from `FuelInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- `ConflictError` is the typed signal for "this window already holds an
  accepted record". Stores raise it directly; callers never inspect driver
  error strings.
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns and also understand domain
  exceptions, which share `ErrorSeverity`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., duplicate submissions)
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class FuelInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise FuelInfrastructureException(
        ...     "Store unreachable",
        ...     {"url": "postgresql+asyncpg://db/fuel"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(FuelInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class ConflictError(FuelInfrastructureException):
    """
    Raised by a store when a completion collides with an already accepted
    record in the same gating window.

    Args:
        kind: Action kind value of the rejected completion
        window_key: Gating window the earlier record occupies
        instance_id: Parent instance, if the kind has one
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = False

    def __init__(
        self,
        kind: str,
        window_key: str,
        instance_id: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.window_key = window_key
        self.instance_id = instance_id
        super().__init__(
            f"Completion already recorded for {kind} in window {window_key}",
            details={
                "kind": kind,
                "window_key": window_key,
                "instance_id": instance_id,
            },
            error_code="COMPLETION_CONFLICT",
        )


class TransientStoreError(FuelInfrastructureException):
    """
    Raised when the authoritative store could not complete an operation
    for reasons that may succeed on retry (connectivity, timeouts, locks).

    Args:
        operation: Description of the store operation that failed
        original_error: The underlying exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        error_msg = str(original_error) if original_error else "store unavailable"
        super().__init__(
            f"Store error during {operation}: {error_msg}",
            details={
                "operation": operation,
                "error": error_msg,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="STORE_UNAVAILABLE",
        )


class EventBusError(FuelInfrastructureException):
    """
    Raised when the update event bus is misused (e.g. publishing after close).

    Args:
        operation: Description of the event operation that failed
        reason: Explanation of the failure
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Event bus error during {operation}: {reason}",
            details={"operation": operation, "reason": reason},
            error_code="EVENT_BUS_ERROR",
        )


class DatabaseInitializationError(FuelInfrastructureException):
    """
    Raised when the database engine cannot be created or fails its first
    health check.

    Args:
        url: Database URL with credentials stripped
        original_error: The underlying exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = True

    def __init__(self, url: str, original_error: Optional[Exception] = None) -> None:
        self.url = url
        self.original_error = original_error
        super().__init__(
            f"Database initialization failed for {url}: {original_error}",
            details={
                "url": url,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="DB_INIT_FAILED",
        )


class DatabaseNotInitializedError(FuelInfrastructureException):
    """Raised when a session is requested before DatabaseService.initialize()."""

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(self) -> None:
        super().__init__(
            "DatabaseService not initialized",
            error_code="DB_NOT_INITIALIZED",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    return bool(getattr(exc, "is_retryable", False)) and isinstance(
        getattr(exc, "severity", None), ErrorSeverity
    )


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    severity = getattr(exc, "severity", None)
    if isinstance(severity, ErrorSeverity):
        return severity
    return ErrorSeverity.ERROR  # Default for unknown exceptions


def should_alert(exc: Exception) -> bool:
    """
    Determine if an exception should trigger alerting.

    Args:
        exc: Exception to check

    Returns:
        True if severity is ERROR or CRITICAL, False otherwise.
    """
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
