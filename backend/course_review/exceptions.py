"""Domain exceptions raised by the service layer.

Each class maps to one HTTP status code; ``course_review.main`` registers the
handlers that translate them into JSON error responses.
"""

from typing import Any


class CourseReviewError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CourseReviewError):
    """Malformed or out-of-range input, or a rule the caller can correct."""

    status_code = 400


class AuthenticationError(CourseReviewError):
    """Missing or invalid credentials."""

    status_code = 401


class PermissionDeniedError(CourseReviewError):
    """Authenticated, but not allowed to act on the resource."""

    status_code = 403


class NotFoundError(CourseReviewError):
    """Requested resource does not exist."""

    status_code = 404


class ConflictError(CourseReviewError):
    """State-based rule violation: duplicate, already exists, already canceled."""

    status_code = 409


class UsageLimitExceededError(CourseReviewError):
    """Free-tier quota exhausted for the current period."""

    status_code = 402


class ExternalServiceError(CourseReviewError):
    """The payment processor rejected or failed a request."""

    status_code = 502
