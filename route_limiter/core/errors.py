"""Application-level exception types.

This module defines the errors raised by the counter store adapters and the
rate limiter, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    http_status: int
    store: str
    key: str
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class ConfigurationAppError(ValidationAppError):
    """Raised at registration time when a route configuration is invalid."""


class StoreUnavailableError(AppError):
    """Raised when no counter store client is usable (absent or disconnected)."""


class StoreAppError(AppError):
    """Raised when a connected counter store fails to execute an operation."""
