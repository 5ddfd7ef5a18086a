"""
Exceptions for call-level failures.

Item-level upload failures are values (UploadError), not exceptions: a
batch keeps going when one photo fails. The exceptions here are for
failures that end the whole call - no identity, wrong identity, bad
arguments, or a store that cannot be reached.
"""

from .models import ErrorKind


class PhotoVaultError(Exception):
    """Base class; every subclass carries the ErrorKind callers switch on."""
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotAuthenticatedError(PhotoVaultError):
    """No valid identity. Never retried automatically."""
    kind = ErrorKind.NOT_AUTHENTICATED


class ForbiddenError(PhotoVaultError):
    """Identity is valid but does not own the requested prefix."""
    kind = ErrorKind.FORBIDDEN


class InvalidArgumentError(PhotoVaultError):
    """Malformed prefix or missing required field."""
    kind = ErrorKind.INVALID_ARGUMENT


class UnavailableError(PhotoVaultError):
    """Store or service unreachable. Callers may retry the whole call."""
    kind = ErrorKind.UNAVAILABLE
