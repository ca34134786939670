"""Custom exceptions for the merchant back-office."""

from typing import Optional


class BackOfficeException(Exception):
    """Base exception for the back-office service layer."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def extra(self) -> dict:
        """Additional fields rendered into the error response body."""
        return {}


class NotFoundError(BackOfficeException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class UnauthorizedError(BackOfficeException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, 401)


class ForbiddenError(BackOfficeException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, 403)


class ValidationError(BackOfficeException):
    """Validation error naming the offending field."""

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None):
        super().__init__(message, 422)
        self.field = field

    def extra(self) -> dict:
        return {"field": self.field} if self.field else {}


class ConflictError(BackOfficeException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, 409)


class TemplateInUseError(ConflictError):
    """An action template is still attached to active trigger actions."""

    def __init__(self, template_name: str, triggers: list[str]):
        self.triggers = list(triggers)
        super().__init__(
            f"Template '{template_name}' is used by active trigger(s): "
            f"{', '.join(self.triggers)}. Remove it from these triggers first."
        )

    def extra(self) -> dict:
        return {"triggers": self.triggers}


class RateLimitExceededError(BackOfficeException):
    """Hourly API-key quota exhausted."""

    def __init__(self, limit: int, reset_time: str):
        self.limit = limit
        self.reset_time = reset_time
        super().__init__(f"Rate limit of {limit} requests per hour exceeded", 429)

    def extra(self) -> dict:
        return {"limit": self.limit, "reset_time": self.reset_time}
