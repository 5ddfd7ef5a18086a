"""
Mapping from domain exceptions to HTTP error bodies.

Shared by the FastAPI routes and the Lambda handler so both transports
answer with the same status codes and JSON shapes.
"""

from typing import Any

from fastapi import status

from ..core.media.errors import (
    ForbiddenError,
    InvalidArgumentError,
    NotAuthenticatedError,
    PhotoVaultError,
)

INTERNAL_ERROR = "Internal server error"

_STATUS_BY_ERROR: dict[type[PhotoVaultError], int] = {
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    NotAuthenticatedError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
}


def error_response(exc: Exception) -> tuple[int, dict[str, Any]]:
    """Return (status_code, body) for an exception raised by the service."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code, {"error": exc.message}

    message = exc.message if isinstance(exc, PhotoVaultError) else str(exc)
    return status.HTTP_500_INTERNAL_SERVER_ERROR, internal_error_body(message)


def internal_error_body(message: str) -> dict[str, Any]:
    return {"error": INTERNAL_ERROR, "message": message}
