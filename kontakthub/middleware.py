"""Error handling and request logging for the KontaktHub API.

Every failed request gets the same JSON envelope::

    {"error": "...", "message": "...", "details": {...}}

Status code mapping:

- ``NotFound`` -> 404
- ``ValidationError`` and request validation failures -> 400
- ``ConstraintViolation`` and ``IntegrityError`` -> 409
- ``TransientUnavailable`` and a locked SQLite database -> 503
- Any other exception -> 500
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.middleware.base import BaseHTTPMiddleware

from .core import get_settings
from .errors import KontaktHubError, TransientUnavailable
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int, error: str, message: str, details: dict | None = None
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _internal_error(exc: Exception) -> JSONResponse:
    message = "An error occurred" if get_settings().is_production else str(exc)
    return _error_response(
        500, "Internal server error", message or "An error occurred"
    )


async def _handle_domain_error(request: Request, exc: KontaktHubError) -> JSONResponse:
    """Map a domain exception onto its status code."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.error, exc.message, exc.details)


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with one message per offending field."""
    details = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details[".".join(loc) or "body"] = error.get("msg", "Invalid value")
    logger.info(
        "Validation error on %s %s: %s", request.method, request.url.path, details
    )
    return _error_response(400, "Validation error", "Invalid request data", details)


async def _handle_integrity_error(
    request: Request, exc: IntegrityError
) -> JSONResponse:
    """Return 409 when the database rejects a write."""
    logger.warning(
        "Integrity error on %s %s: %s", request.method, request.url.path, exc.orig
    )
    return _error_response(409, "Constraint violation", "Database constraint violated")


async def _handle_operational_error(
    request: Request, exc: OperationalError
) -> JSONResponse:
    """Return 503 while the database is locked, 500 otherwise."""
    text = str(exc.orig).lower()
    if "locked" in text or "busy" in text:
        logger.warning("Database busy on %s %s", request.method, request.url.path)
        return await _handle_domain_error(
            request, TransientUnavailable("Database is busy, please retry")
        )
    logger.error(
        "Database error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return _internal_error(exc)


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """Turn any unhandled exception into a logged 500 response."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _internal_error(exc)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers and the logging middlewares to the app."""
    app.add_exception_handler(KontaktHubError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(IntegrityError, _handle_integrity_error)
    app.add_exception_handler(OperationalError, _handle_operational_error)
    app.add_middleware(CatchAllErrorMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
