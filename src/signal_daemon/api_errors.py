"""Errors the Signal API reports, all rendered in one response envelope."""

from fastapi import HTTPException

from .models import Category


class APIError(HTTPException):
    """Base for every error the API returns on purpose.

    The handlers in api.py render all of them as:
    {"success": false, "message": "error message", "data": null}
    """

    def __init__(self, status_code: int, message: str):
        """Create an API error.

        Args:
            status_code: HTTP status code
            message: Human-readable message placed in the envelope
        """
        super().__init__(status_code=status_code, detail=message)
        self.message = message


# Request problems (4xx)


class ValidationError(APIError):
    """422 - A query parameter was rejected."""

    def __init__(self, message: str):
        super().__init__(422, message)


class CategoryError(ValidationError):
    """422 - Category missing or outside the closed set.

    Raised before the insight cache is consulted, so unknown values never
    create archive records or model calls.
    """

    def __init__(self, value: str | None = None):
        valid = ", ".join(c.value for c in Category)
        if value is None or value == "":
            message = f"category is required. Must be one of: {valid}"
        else:
            message = f"Unknown category '{value}'. Expected one of: {valid}"
        super().__init__(message)
        self.value = value


class InvalidDateError(ValidationError):
    """422 - A date filter could not be parsed."""

    def __init__(self, param: str, value: str):
        super().__init__(f"Invalid date for {param}: {value}. Expected format: 2025-01-31")


class NotFoundError(APIError):
    """404 - Resource not found (e.g. an archived insight record id)."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(404, f"{resource} not found: {resource_id}")


# Server problems (5xx)


class ServerError(APIError):
    """500 - Internal server error."""

    def __init__(self, message: str):
        super().__init__(500, message)


class ServiceNotConfiguredError(ServerError):
    """500 - The daemon has not wired a service into app.state yet."""

    def __init__(self, service: str):
        super().__init__(f"Service not initialized: {service}")
