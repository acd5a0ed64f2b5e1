"""Global error handling to prevent information disclosure."""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from controle_api.config import get_settings
from controle_api.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BackupRestoreError,
    BackupValidationError,
    ControleAPIError,
    ExternalServiceError,
    ProvisioningError,
    UserAlreadyExistsError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _get_cors_headers(request: Request) -> dict[str, str]:
    """Get CORS headers for error responses.

    Exception handlers run before the CORS middleware can add headers,
    so allowed origins are echoed here.
    """
    origin = request.headers.get("origin")
    if not origin:
        return {}

    if origin in get_settings().cors_origins_list:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
        }
    return {}


# Safe error messages that can be shown to users
SAFE_ERROR_MESSAGES = {
    400: "Invalid request",
    401: "Authentication required",
    403: "Access denied",
    404: "Resource not found",
    405: "Method not allowed",
    409: "Conflict with existing resource",
    413: "File too large",
    422: "Invalid input data",
    429: "Too many requests",
    500: "Internal server error",
    502: "Service unavailable",
    503: "Service temporarily unavailable",
}

# Error messages that are safe to pass through
ALLOWED_ERROR_PATTERNS = [
    "Authentication required",
    "Invalid or expired token",
    "Access denied",
    "Manager access required",
    "users[] is required",
    "Confirmation text",
    "File too large",
    "Empty file",
    "Error reading file",
    "Invalid file",
    "Incompatible version",
    "missing or invalid in file",
]

# Domain exception -> HTTP status; first match wins
_STATUS_BY_EXCEPTION: list[tuple[type[ControleAPIError], int]] = [
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (BackupValidationError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UserAlreadyExistsError, status.HTTP_409_CONFLICT),
    (ProvisioningError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (BackupRestoreError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
]


def is_safe_error_message(message: str) -> bool:
    """Check if an error message is safe to expose to users."""
    message_lower = message.lower()
    return any(pattern.lower() in message_lower for pattern in ALLOWED_ERROR_PATTERNS)


def sanitize_error_detail(detail: Any, status_code: int) -> str:
    """Sanitize error detail to prevent information disclosure.

    Args:
        detail: Original error detail
        status_code: HTTP status code

    Returns:
        Safe error message
    """
    if isinstance(detail, str):
        if is_safe_error_message(detail):
            return detail
    elif isinstance(detail, list):
        # Validation errors - only field names and messages
        safe_errors = []
        for error in detail:
            if isinstance(error, dict):
                loc = error.get("loc", [])
                msg = error.get("msg", "Invalid value")
                field = loc[-1] if loc else "field"
                if isinstance(field, str) and not field.startswith("_"):
                    safe_errors.append(f"{field}: {msg}")
        if safe_errors:
            return "; ".join(safe_errors[:3])

    return SAFE_ERROR_MESSAGES.get(status_code, "Request failed")


def status_for_exception(exc: ControleAPIError) -> int:
    """Map a domain exception to its HTTP status code."""
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def controle_exception_handler(request: Request, exc: ControleAPIError) -> JSONResponse:
    """Handle domain exceptions.

    Domain messages are written for end users and pass through, except for
    external service failures, whose raw backend text is only logged.
    """
    settings = get_settings()
    status_code = status_for_exception(exc)

    if isinstance(exc, ExternalServiceError) and not settings.debug:
        logger.error(f"External service error for {request.url}: {exc.message} {exc.details}")
        detail = SAFE_ERROR_MESSAGES[status_code]
    else:
        if status_code >= 500:
            logger.error(f"{type(exc).__name__} for {request.url}: {exc.message} {exc.details}")
        detail = exc.message

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail},
        headers=_get_cors_headers(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with sanitized messages."""
    settings = get_settings()
    detail = exc.detail if settings.debug else sanitize_error_detail(exc.detail, exc.status_code)

    headers = _get_cors_headers(request)
    if exc.headers:
        headers.update(exc.headers)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail},
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation exceptions with sanitized messages."""
    settings = get_settings()

    logger.warning(f"Validation error for {request.url}: {exc.errors()}")

    if settings.debug:
        detail: Any = exc.errors()
    else:
        detail = sanitize_error_detail(exc.errors(), status.HTTP_422_UNPROCESSABLE_ENTITY)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": detail},
        headers=_get_cors_headers(request),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without leaking information."""
    settings = get_settings()

    logger.error(f"Unhandled exception for {request.url}: {exc}", exc_info=True)

    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__}
    else:
        content = {"detail": SAFE_ERROR_MESSAGES[500]}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_get_cors_headers(request),
    )
