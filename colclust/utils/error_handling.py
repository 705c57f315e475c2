"""
Error Handling Module

Provides the exception hierarchy shared by the clustering library:
- Configuration and parameter errors
- Input validation errors
- Numerical consistency errors raised by distance computations
- Model persistence errors
"""

import time
from typing import Any, Optional

import structlog


logger = structlog.get_logger(__name__)


# =============================================================================
# Custom Exception Hierarchy
# =============================================================================


class ClusteringServiceError(Exception):
    """Base exception for all clustering library errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = time.time()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/CLI output."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Configuration Errors
class ConfigurationError(ClusteringServiceError):
    """Error in library configuration or algorithm parameters."""
    pass


# Clustering Errors
class ClusteringError(ClusteringServiceError):
    """Base class for clustering algorithm errors."""
    pass


class InvalidAlgorithmError(ClusteringError):
    """Unknown or unsupported clustering algorithm."""
    pass


class InvalidInputError(ClusteringError, ValueError):
    """Feature matrix rejected before any buffer is allocated."""
    pass


class InsufficientDataError(InvalidInputError):
    """Not enough data points for the requested number of clusters."""
    pass


class NotFittedError(ClusteringError):
    """Model queried before fit() produced any centroids."""
    pass


class NumericalInstabilityError(ClusteringError, ArithmeticError):
    """Squared distance came out meaningfully negative."""
    pass


# Distance Errors
class DistanceNotImplementedError(ClusteringServiceError, NotImplementedError):
    """Distance metric is known but has no implementation."""
    pass


# Persistence Errors
class ModelFormatError(ClusteringServiceError):
    """Serialized model is malformed or of an unexpected type."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================


def log_error(operation: str, error: Exception, context: Optional[dict[str, Any]] = None) -> None:
    """
    Log an error with structured context.

    Args:
        operation: Name of the failing operation
        error: Exception that occurred
        context: Additional context fields
    """
    payload = error.to_dict() if isinstance(error, ClusteringServiceError) else {
        "error_type": type(error).__name__,
        "message": str(error),
    }
    payload.update(context or {})
    logger.error("operation_error", operation=operation, **payload)
