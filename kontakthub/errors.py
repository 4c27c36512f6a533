"""Domain exceptions raised by the KontaktHub services.

Routers never catch these; the handlers registered in
:mod:`kontakthub.middleware` turn them into HTTP responses.
"""

from typing import Any


class KontaktHubError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(KontaktHubError):
    """A referenced contact, group, event, setting or import does not exist."""

    status_code = 404
    error = "Not found"


class ValidationError(KontaktHubError):
    """Input is missing a required field or carries a malformed value."""

    status_code = 400
    error = "Validation error"


class ConstraintViolation(KontaktHubError):
    """A uniqueness invariant would be broken by the write."""

    status_code = 409
    error = "Constraint violation"


class TransientUnavailable(KontaktHubError):
    """The store is busy or locked; the caller may retry."""

    status_code = 503
    error = "Database busy"
