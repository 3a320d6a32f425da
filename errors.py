# errors.py

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that are reported to the caller as {"error": message}."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class InvalidCode(AppError):
    status_code = 400
    default_message = "Invalid or already used reset code"


class AuthorizationDenied(AppError):
    status_code = 403
    default_message = "Not allowed"


class InvalidStatusTransition(AppError):
    status_code = 409
    default_message = "Status change not allowed"


class UpstreamRateLimited(AppError):
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."


class UpstreamQuotaExhausted(AppError):
    status_code = 402
    default_message = "AI credits exhausted. Please add more credits."


class UpstreamGenericFailure(AppError):
    status_code = 500
    default_message = "AI gateway error"


class PersistenceFailure(AppError):
    status_code = 500
    default_message = "Failed to save changes"


# ─── Handlers ──────────────────────────────────────────────────────────────────
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed bodies as a ValidationError carrying the first problem found."""
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"error": ValidationError.default_message})
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    return JSONResponse(status_code=400, content={"error": message})


async def generic_exception_handler(request: Request, exc: Exception):
    """Hide internal error details from clients."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
