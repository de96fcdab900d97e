"""
Domain exceptions for the Fuel Points engine.

Purpose
-------
Define the structured, domain-specific exception hierarchy for completion
rules. These are raised by the workflow, lifecycle service and stores for
business rule violations; UI collaborators translate them into messages.

Design Notes
------------
- All domain exceptions inherit from `FuelDomainException` and share
  `ErrorSeverity` with the infrastructure hierarchy.
- `ValidationError` never reaches the store: the workflow raises it before
  any optimistic mutation.
- `InvariantViolationError` is the distinct "this is already finished"
  outcome, separate from generic failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fuelpoints.core.exceptions import ErrorSeverity


class FuelDomainException(Exception):
    """
    Base exception for all domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
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


class NotFoundError(FuelDomainException):
    """
    Raised when a requested player or instance cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Player", "ChallengeInstance")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(FuelDomainException):
    """
    Raised when a completion attempt or lifecycle input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class WindowClosedError(ValidationError):
    """
    Raised when the gating window for an action is not open yet.

    Args:
        kind: Action kind value
        days_remaining: Whole days until the window opens (0 for daily kinds
            that reopen at local midnight)
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, kind: str, days_remaining: int = 0) -> None:
        self.kind = kind
        self.days_remaining = days_remaining
        if days_remaining:
            reason = f"{kind} available again in {days_remaining} day(s)"
        else:
            reason = f"{kind} already completed for today"
        super().__init__("window", reason)
        self.details.update({"kind": kind, "days_remaining": days_remaining})


class InvariantViolationError(FuelDomainException):
    """
    Raised when a completion targets an instance that is already finished.

    Legitimate race between two surfaces showing the same instance; fatal to
    the attempt, not to the session.

    Args:
        resource_type: Kind of parent instance
        identifier: Instance identifier
        status: The terminal status the instance is already in
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = False

    def __init__(self, resource_type: str, identifier: Any, status: str) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        self.status = status
        super().__init__(
            f"{resource_type} {identifier} is already {status}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
                "status": status,
            },
            error_code="ALREADY_FINISHED",
        )


class InvalidOperationError(FuelDomainException):
    """
    Raised when a lifecycle operation violates the instance rules.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidOperationError(
        ...     "cancel_challenge",
        ...     "challenge is already completed"
        ... )
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )
