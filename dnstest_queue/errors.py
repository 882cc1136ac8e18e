"""
Exception classes for the job queue.

All exceptions inherit from QueueError and carry a stable machine-readable
code, a human readable message and optional structured details.
"""

from typing import Any


class QueueError(Exception):
    """Base exception for all job queue errors."""

    code = "queue_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(QueueError):
    """Raised when required input is missing or malformed. Never reaches storage."""

    code = "validation"


class ConflictError(QueueError):
    """Raised when an identity that must be unique already exists."""

    code = "conflict"


class InternalError(QueueError):
    """Raised when a storage operation fails or returns an unusable result."""

    code = "internal"


class NotFoundError(QueueError):
    """Raised when no job, batch or entry matches a query."""

    code = "not_found"
