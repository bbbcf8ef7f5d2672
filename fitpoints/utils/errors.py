"""
Standardized error response utilities for the FitPoints API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from fitpoints.utils.errors import error_response, ErrorCode

    return error_response("Invalid or expired code", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses and service outcomes."""

    # Authentication & Authorization (401, 403)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    FORBIDDEN = "FORBIDDEN"

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"

    # Redemption state (409, 410)
    EXPIRED = "EXPIRED"
    ALREADY_CONFIRMED = "ALREADY_CONFIRMED"
    CANCELLED = "CANCELLED"
    ALREADY_AWARDED = "ALREADY_AWARDED"

    # Business Logic Errors (422)
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Rate limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # Server Errors (500, 503)
    CODE_SPACE_EXHAUSTED = "CODE_SPACE_EXHAUSTED"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# HTTP status for each outcome code returned by the services
STATUS_BY_CODE = {
    ErrorCode.AUTH_REQUIRED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.MISSING_FIELD: 400,
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_CONFIRMED: 409,
    ErrorCode.CANCELLED: 409,
    ErrorCode.ALREADY_AWARDED: 409,
    ErrorCode.EXPIRED: 410,
    ErrorCode.INSUFFICIENT_BALANCE: 422,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.CODE_SPACE_EXHAUSTED: 503,
    ErrorCode.STORAGE_ERROR: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Optional additional details (only logged, not returned to user)

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    response = {
        "error": {
            "message": message,
            "code": code.value if isinstance(code, ErrorCode) else code
        }
    }

    return jsonify(response), status_code


def outcome_error(result: dict) -> tuple:
    """Render a failed service outcome dict as an error response."""
    code = ErrorCode(result.get('error_code', ErrorCode.INTERNAL_ERROR))
    status_code = STATUS_BY_CODE.get(code, 500)
    return error_response(result.get('error', 'Operation failed'), code, status_code,
                          log_error=status_code >= 500)


# Convenience functions for common error types
def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Authentication required", code: ErrorCode = ErrorCode.AUTH_REQUIRED) -> tuple:
    """401 Unauthorized error."""
    return error_response(message, code, 401, log_error=False)


def forbidden(message: str = "Permission denied", code: ErrorCode = ErrorCode.FORBIDDEN) -> tuple:
    """403 Forbidden error."""
    return error_response(message, code, 403, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)
