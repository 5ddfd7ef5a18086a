"""
Photo upload logic.

Contains the upload engine, batch coordinator, accounting service,
identity resolution, key derivation and the domain models they share.
"""

from .models import (
    BatchItem,
    BatchProgress,
    BatchResult,
    CallerIdentity,
    Credentials,
    ErrorKind,
    Identity,
    ItemStatus,
    Session,
    StorageStats,
    StoredFile,
    TimestampInfo,
    TimestampSource,
    UploadError,
    UploadInProgress,
    UploadState,
    UploadSuccess,
)
from .errors import (
    ForbiddenError,
    InvalidArgumentError,
    NotAuthenticatedError,
    PhotoVaultError,
    UnavailableError,
)
from .accounting import StorageAccountingService
from .batch import BatchCoordinator
from .cancellation import CancellationToken
from .engine import UploadEngine
from .identity import AccountRecord, IdentityResolver
from .timestamps import TimestampExtractor

__all__ = [
    "BatchItem",
    "BatchProgress",
    "BatchResult",
    "CallerIdentity",
    "Credentials",
    "ErrorKind",
    "Identity",
    "ItemStatus",
    "Session",
    "StorageStats",
    "StoredFile",
    "TimestampInfo",
    "TimestampSource",
    "UploadError",
    "UploadInProgress",
    "UploadState",
    "UploadSuccess",
    "ForbiddenError",
    "InvalidArgumentError",
    "NotAuthenticatedError",
    "PhotoVaultError",
    "UnavailableError",
    "StorageAccountingService",
    "BatchCoordinator",
    "CancellationToken",
    "UploadEngine",
    "AccountRecord",
    "IdentityResolver",
    "TimestampExtractor",
]
