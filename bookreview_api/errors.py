"""
Domain errors and the exception handlers that turn every failure into the
response envelope.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookreview_api.models import ErrorResponse, FieldError

logger = structlog.get_logger(__name__)


def envelope_status(status_code: int) -> str:
    """Envelope ``status`` for an HTTP code: ``fail`` for 4xx, ``error`` otherwise."""
    return "fail" if 400 <= status_code < 500 else "error"


class AppError(Exception):
    """Failure carrying exactly one HTTP status and one message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return envelope_status(self.status_code)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: List[FieldError], message: str = "Validation error"):
        super().__init__(message)
        self.errors = errors


class UnauthenticatedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    # Existing clients expect 400 here, not 409.
    status_code = status.HTTP_400_BAD_REQUEST


class DuplicateRecordError(Exception):
    """Raised by the repository when a unique index rejects a write."""


def _error_response(
    status_code: int,
    message: str,
    errors: Optional[List[FieldError]] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    body = ErrorResponse(status=envelope_status(status_code), message=message, errors=errors)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers
    )


def _field_path(loc: Any) -> str:
    parts = [str(part) for part in loc]
    if parts and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts)


def validation_errors(exc: RequestValidationError) -> List[FieldError]:
    """Flatten FastAPI validation details into ``{path, message}`` pairs."""
    return [
        FieldError(path=_field_path(error.get("loc", ())), message=error.get("msg", "Invalid value"))
        for error in exc.errors()
    ]


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain errors."""
    return _error_response(
        exc.status_code,
        exc.message,
        errors=getattr(exc, "errors", None),
        headers=exc.headers
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle schema failures on bodies and query strings."""
    error = ValidationError(validation_errors(exc))
    logger.info("Request validation failed", path=request.url.path, errors=len(error.errors))
    return await app_error_handler(request, error)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle routing-level HTTP exceptions (unknown path, wrong method)."""
    return _error_response(
        exc.status_code,
        str(exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions. Details stay in the server log."""
    logger.exception("Unhandled exception", path=request.url.path, method=request.method)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing handlers on an application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
