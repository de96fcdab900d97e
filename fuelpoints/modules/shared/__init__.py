"""
Fuel Points Shared Module

Purpose
-------
Domain-level foundations for every progression module:
- Domain exceptions and error handling
- Base service pattern (config, events, logging)
- Pure progression formulas
- Calendar and rolling window arithmetic

Architecture
------------
- BaseService: Foundation for service classes
- Domain exceptions: Player-facing errors and business rule violations
- Formulas: Level thresholds, streak bonuses, challenge and health rewards
- Windows: Daily, rolling and weekly-reset gates
"""

from fuelpoints.modules.shared.base_service import BaseService
from fuelpoints.modules.shared.exceptions import (
    FuelDomainException,
    InvalidOperationError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
    WindowClosedError,
)

__all__ = [
    "BaseService",
    "FuelDomainException",
    "InvalidOperationError",
    "InvariantViolationError",
    "NotFoundError",
    "ValidationError",
    "WindowClosedError",
]
