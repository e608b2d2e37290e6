"""
Error taxonomy shared by services and routes.

Services raise these; ``welth.main`` turns them into JSON responses of the
form ``{"success": false, "error": "<message>"}``.
"""

from typing import Optional


class WelthError(Exception):
    """Base exception for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(WelthError):
    """No authenticated caller."""

    status_code = 401


class NotFoundError(WelthError):
    """Referenced entity is absent or not owned by the caller."""

    status_code = 404


class ValidationError(WelthError):
    """Malformed input."""

    status_code = 422


class RateLimitedError(WelthError):
    """Quota exhausted; ``retry_after`` is in whole seconds."""

    status_code = 429

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(
            message or f"Rate limit exceeded. Try again in {retry_after} seconds."
        )
        self.retry_after = retry_after


class ExternalServiceError(WelthError):
    """Store, notification or AI collaborator unavailable or unusable."""

    status_code = 502
