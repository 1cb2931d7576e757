"""Exception hierarchy and handlers for consistent error responses.

Services raise `NutariaException` subclasses; the handlers registered
here turn them (and framework / database errors) into

    {"error": {"code": "...", "message": "...", "details": {...}}}

A missing step-detail row is not an error: those lookups return
`null` / `[]` and never reach this module.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class NutariaException(Exception):
    """Base exception for Nutaria application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class BusinessLogicError(NutariaException):
    def __init__(self, message: str, error_code: str = "BUSINESS_LOGIC_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
        )


class PreconditionError(BusinessLogicError):
    """A record the operation depends on does not exist yet."""

    def __init__(self, message: str):
        super().__init__(message, error_code="PRECONDITION_FAILED")


class ResourceNotFoundError(NutariaException):
    def __init__(self, resource: str, identifier):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class InvalidTransitionError(NutariaException):
    """A status change not allowed by the entity's lifecycle."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            message=f"{entity} cannot move from {current} to {target}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


class DuplicateSignoffError(NutariaException):
    def __init__(self, role: str):
        super().__init__(
            message=f"You have already signed off as {role}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="DUPLICATE_SIGNOFF",
        )


class PermissionDeniedError(NutariaException):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }
    if details:
        content["error"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def nutaria_exception_handler(
    request: Request,
    exc: NutariaException,
) -> JSONResponse:
    logger.warning(
        "%s on %s %s: %s",
        exc.error_code, request.method, request.url.path, exc.message,
    )
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "HTTP %s on %s %s: %s",
            exc.status_code, request.method, request.url.path, exc.detail,
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info("Validation error on %s: %d field(s)", request.url.path, len(errors))

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Map unique / foreign key / not-null violations to 422s."""
    error_msg = str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)
    logger.error("Integrity error on %s: %s", request.url.path, error_msg)

    lowered = error_msg.lower()
    if "unique" in lowered:
        message, error_code = "A record with this value already exists", "DUPLICATE_RECORD"
    elif "foreign key" in lowered:
        message, error_code = "Referenced record does not exist", "FOREIGN_KEY_VIOLATION"
    elif "not null" in lowered:
        message, error_code = "Required field is missing", "NULL_VALUE_NOT_ALLOWED"
    else:
        message, error_code = "Database constraint violation", "INTEGRITY_ERROR"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc)
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method, request.url.path, exc, traceback.format_exc(),
    )
    # Never leak internals to the client
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(NutariaException, nutaria_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
