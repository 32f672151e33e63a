import traceback
from typing import Any, Dict, List

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.application.exceptions import (
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)

from ..factory import get_data_sanitizer

HTTP_STATUS_MESSAGES = {
    status.HTTP_400_BAD_REQUEST: "Bad request",
    status.HTTP_401_UNAUTHORIZED: "Authentication required",
    status.HTTP_403_FORBIDDEN: "Permission denied",
    status.HTTP_404_NOT_FOUND: "Resource not found",
    status.HTTP_409_CONFLICT: "Conflict occurred",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "Validation error",
    status.HTTP_429_TOO_MANY_REQUESTS: "Rate limit exceeded",
}


def normalize_error_detail(detail: Any) -> str | List[str] | Dict[str, Any]:
    """Normalize an error detail into a string, list of strings, or dictionary.

    Parameters
    ----------
    detail: Any
        Raw error detail: string, dictionary, or iterable.

    Returns
    -------
    str | List[str] | Dict[str, Any]
        Representation suitable for the `errors.detail` response field.
    """
    if isinstance(detail, str):
        return detail

    if isinstance(detail, dict):
        return {str(key): str(value) for key, value in detail.items()}

    if hasattr(detail, "__iter__"):
        return [str(item) for item in detail]

    return str(detail)


def _error_response(
    request: Request, status_code: int, message: str, detail: Any
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": message,
            "errors": {"detail": detail},
            "status_code": status_code,
            "path": str(request.url),
            "method": request.method,
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for the FastAPI application.

    Maps domain errors, database errors, validation errors and HTTP errors
    to the standard error envelope. Sensitive information is sanitized
    before anything is logged.

    Parameters
    ----------
    request: Request
        Incoming request.
    exc: Exception
        Exception that escaped the route handler.

    Returns
    -------
    JSONResponse
        Standardized error payload with the matching HTTP status code.
    """
    exc_type = type(exc).__name__
    sanitizer = await get_data_sanitizer()

    if isinstance(exc, NotFoundError):
        return _error_response(
            request, status.HTTP_404_NOT_FOUND, "Resource not found", exc.message
        )

    if isinstance(exc, ValidationFailedError):
        return _error_response(
            request, status.HTTP_400_BAD_REQUEST, "Invalid field items", exc.message
        )

    if isinstance(exc, StorageFailureError):
        cause = exc.__cause__ if exc.__cause__ is not None else exc
        logger.error(
            f"📝 StorageFailureError -> {type(cause).__name__}: "
            f"{sanitizer.sanitize_exception_for_logging(cause)}"
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            exc.message,
        )

    if isinstance(
        exc, (ValidationError, RequestValidationError, ResponseValidationError)
    ):
        errors = [
            f"{error['msg']} in {'.'.join(str(x) for x in error['loc'])}"
            for error in exc.errors()
        ]
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            errors[0] if len(errors) == 1 else errors,
        )

    if isinstance(exc, ValueError):
        return _error_response(
            request, status.HTTP_400_BAD_REQUEST, "Invalid field items", str(exc)
        )

    if isinstance(exc, IntegrityError):
        logger.warning(
            f"📝 IntegrityError -> {sanitizer.sanitize_exception_for_logging(exc.orig)}"
        )
        return _error_response(
            request,
            status.HTTP_409_CONFLICT,
            "Database constraint violation",
            "The request conflicts with existing data",
        )

    if isinstance(exc, SQLAlchemyError):
        logger.error(
            f"📝 SQLAlchemyError -> {exc_type}: "
            f"{sanitizer.sanitize_exception_for_logging(exc)}"
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Database error occurred",
            "A database error occurred",
        )

    if isinstance(exc, (HTTPException, StarletteHTTPException)):
        if exc.status_code >= 500:
            message = "Internal server error"
        else:
            message = HTTP_STATUS_MESSAGES.get(exc.status_code, "HTTP error occurred")
        return _error_response(
            request, exc.status_code, message, normalize_error_detail(exc.detail)
        )

    tb = traceback.extract_tb(exc.__traceback__)
    if tb:
        last_frame = tb[-1]
        location = f'File "{last_frame.filename}", line {last_frame.lineno}, in {last_frame.name}'
    else:
        location = "No traceback available"

    logger.critical(
        f"☢️ Unhandled exception -> {exc_type}: "
        f"{sanitizer.sanitize_exception_for_logging(exc)}\nLocation: {location}"
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "An unexpected error occurred",
    )
