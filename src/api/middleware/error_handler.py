"""
Global error handling for the FastAPI application.

Catches SpeechCraftError subclasses, request validation errors, HTTP
exceptions, and unhandled exceptions, converting them into the shared
JSON envelope. Outside development, 5xx responses carry a generic message
and no internal detail.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.responses import error_response
from src.core.config import get_settings
from src.core.exceptions import RateLimitExceededError, SpeechCraftError

logger = logging.getLogger(__name__)

_GENERIC_MESSAGES = {
    502: "Transcription service unavailable",
    503: "Service temporarily unavailable",
}


def _is_development(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None) or get_settings()
    return settings.is_development


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        errors.append(
            {
                "field": ".".join(loc[1:]) or ".".join(loc),
                "message": err.get("msg", "Invalid value"),
                "location": loc[0] if loc else "body",
            }
        )
    return errors


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application.

    Registers four handlers:
    1. ``SpeechCraftError`` maps domain errors to their status and code.
    2. ``RequestValidationError`` becomes a 400 with per-field errors.
    3. ``StarletteHTTPException`` (unknown routes, bad methods) keeps its status.
    4. ``Exception`` is the catch-all for unexpected server errors (500).

    Args:
        app: The FastAPI application instance to register handlers on.
    """

    @app.exception_handler(SpeechCraftError)
    async def speechcraft_error_handler(request: Request, exc: SpeechCraftError) -> JSONResponse:
        """Convert domain-specific errors into the error envelope."""
        extra = {}
        headers = None
        if isinstance(exc, RateLimitExceededError):
            extra["retryAfter"] = exc.retry_after
            headers = {"Retry-After": str(exc.retry_after)}

        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.detail, exc.code)
            if not _is_development(request):
                message = _GENERIC_MESSAGES.get(exc.status_code, "Internal server error")
                return error_response(exc.status_code, message, error=exc.code)

        return error_response(exc.status_code, exc.detail, error=exc.code, headers=headers, **extra)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (malformed body/params)."""
        return error_response(400, "Validation failed", errors=_validation_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler; stack traces never reach clients."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error = str(exc) if _is_development(request) else None
        return error_response(500, "Internal server error", error=error)
