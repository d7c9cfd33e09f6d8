"""Custom exception hierarchy for the wall geometry engine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Closed taxonomy of geometric failures."""
    DEGENERATE_GEOMETRY = "DEGENERATE_GEOMETRY"
    BOOLEAN_FAILURE = "BOOLEAN_FAILURE"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class WallCoreError(Exception):
    """Base exception for all wallcore-specific errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(WallCoreError):
    """Raised when configuration is invalid or missing."""
    pass


class GeometricError(WallCoreError):
    """
    Base class for failures of a geometric operation.

    Carries the failing operation, a snapshot of the offending input and
    a suggested fix so callers can surface the problem without re-running it.
    """

    error_type: ErrorType = ErrorType.DEGENERATE_GEOMETRY

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        input_snapshot: Any = None,
        suggested_fix: str = "",
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        recoverable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.input_snapshot = input_snapshot
        self.suggested_fix = suggested_fix
        self.severity = severity
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "type": self.error_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "operation": self.operation,
            "input": _snapshot(self.input_snapshot),
            "suggestedFix": self.suggested_fix,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "details": dict(self.details),
        }


class DegenerateGeometryError(GeometricError):
    """Raised for empty, non-finite or too-few-point geometry."""
    error_type = ErrorType.DEGENERATE_GEOMETRY


class BooleanOperationError(GeometricError):
    """Raised when a junction or union does not converge."""
    error_type = ErrorType.BOOLEAN_FAILURE


class GeometryValidationError(GeometricError):
    """Raised when a computed result is rejected after the fact."""
    error_type = ErrorType.VALIDATION_FAILURE


class CacheError(WallCoreError):
    """Raised when cache operations fail."""
    pass


class StorageError(WallCoreError):
    """Raised when storage operations fail."""
    pass


class WallNotFoundError(StorageError):
    """Raised when a wall is not found in a store."""
    pass


class ModeSwitchError(WallCoreError):
    """Raised when a basic/BIM conversion cannot proceed."""
    pass


def _snapshot(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_snapshot(item) for item in value]
    if isinstance(value, (str, int, float, bool, dict)):
        return value
    return repr(value)


__all__ = [
    "ErrorType",
    "ErrorSeverity",
    "WallCoreError",
    "ConfigurationError",
    "GeometricError",
    "DegenerateGeometryError",
    "BooleanOperationError",
    "GeometryValidationError",
    "CacheError",
    "StorageError",
    "WallNotFoundError",
    "ModeSwitchError",
]
