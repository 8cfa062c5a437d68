"""Application-level exception types.

Domain errors shared by the store adapters, the decision engine and the HTTP
layer. Store errors are the only ones the decision gate absorbs; everything
else surfaces through the global exception handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    backend: str
    timeout_ms: int
    tier: str
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


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class PolicyNotFoundError(AppError):
    """Raised when a tier has no configured budget.

    The policy resolver handles this itself by falling back to the lowest
    tier; callers of ``PolicyResolver.resolve`` never see it.
    """


class StoreAppError(AppError):
    """Raised when the shared counter store cannot answer a request."""


class StoreUnavailableError(StoreAppError):
    """The counter store could not be reached."""


class StoreTimeoutError(StoreAppError):
    """The counter store was reached but did not answer in time."""
