"""
Domain models for media uploads.

These models represent the core business concepts. They have no dependencies
on external frameworks, storage SDKs or APIs. Results are modelled as small
tagged variants (one dataclass per case) rather than a class hierarchy with
behaviour, so callers pattern-match on the type.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class ErrorKind(Enum):
    """Every way an operation can fail, as seen by callers."""
    NOT_AUTHENTICATED = "not_authenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"  # existence probe only, drives the skip branch
    PERMISSION_DENIED = "permission_denied"
    TRANSFER_FAILED = "transfer_failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"
    INVALID_ARGUMENT = "invalid_argument"
    UNKNOWN = "unknown"


class TimestampSource(Enum):
    """Where a key's timestamp came from."""
    CONTENT = "content"    # embedded capture metadata
    FALLBACK = "fallback"  # wall clock at extraction time


class UploadState(Enum):
    """States of a single upload operation."""
    CREATED = "created"
    CHECKING_EXISTENCE = "checking_existence"
    SKIPPED = "skipped"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    UploadState.SKIPPED,
    UploadState.COMPLETED,
    UploadState.FAILED,
    UploadState.CANCELLED,
})


class ItemStatus(Enum):
    """Per-item status inside a batch."""
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Identity:
    """
    An authenticated principal.

    identity_id is the federated identity id (for Cognito: "region:uuid").
    It can be None when the auth provider is degraded; the label (email)
    is always present.
    """
    identity_id: Optional[str]
    label: str

    def __post_init__(self) -> None:
        if not self.label.strip():
            raise ValueError("Identity label cannot be empty")


@dataclass(frozen=True)
class Credentials:
    """Temporary credentials for talking to the object store."""
    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None
    expiration: Optional[datetime] = None


@dataclass(frozen=True)
class Session:
    """
    Everything an upload or accounting call needs to know about the user.

    Owned by the caller and passed explicitly, so there is no process-wide
    credential cache for tests to trip over.
    """
    identity: Identity
    prefix: str
    credentials: Optional[Credentials] = None


@dataclass(frozen=True)
class TimestampInfo:
    """
    The key fragment derived from a photo's capture time.

    month_bucket is "YYYY-MM", timestamp is "YYYY-MM-DD_HH-mm-ss".
    """
    month_bucket: str
    timestamp: str
    source: TimestampSource
    captured_at: datetime

    @property
    def is_fallback(self) -> bool:
        return self.source is TimestampSource.FALLBACK


# ---------------------------------------------------------------------------
# Upload outcomes
# ---------------------------------------------------------------------------

def progress_percent(bytes_transferred: int, total_bytes: Optional[int]) -> Optional[int]:
    """
    Whole-number completion percentage.

    Returns None (indeterminate) when the total is unknown or zero.
    """
    if not total_bytes or total_bytes <= 0:
        return None
    percent = math.floor(bytes_transferred / total_bytes * 100)
    return max(0, min(100, percent))


@dataclass(frozen=True)
class UploadInProgress:
    """Progress report for an upload that has not finished yet."""
    progress: Optional[int]  # None means indeterminate
    bytes_uploaded: int
    total_bytes: Optional[int]

    @classmethod
    def of(cls, bytes_uploaded: int, total_bytes: Optional[int]) -> "UploadInProgress":
        return cls(
            progress=progress_percent(bytes_uploaded, total_bytes),
            bytes_uploaded=bytes_uploaded,
            total_bytes=total_bytes,
        )


@dataclass(frozen=True)
class UploadSuccess:
    """Object is in the store, either freshly written or already present."""
    remote_url: str
    was_skipped_as_duplicate: bool = False


@dataclass(frozen=True)
class UploadError:
    """Upload did not complete."""
    kind: ErrorKind
    message: str


UploadOutcome = Union[UploadInProgress, UploadSuccess, UploadError]
TerminalOutcome = Union[UploadSuccess, UploadError]


# ---------------------------------------------------------------------------
# Accounting
# ---------------------------------------------------------------------------

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class StorageStats:
    """
    Count and total size of everything under one prefix.

    Always computed from a fresh enumeration; never cached.
    """
    object_count: int = 0
    total_size_bytes: int = 0

    def __post_init__(self) -> None:
        if self.object_count < 0:
            raise ValueError("object_count cannot be negative")
        if self.total_size_bytes < 0:
            raise ValueError("total_size_bytes cannot be negative")

    @property
    def formatted_size(self) -> str:
        """Human-readable size: 1536 -> '1.5 KB'."""
        if self.total_size_bytes < 1024:
            return f"{self.total_size_bytes} B"

        size = float(self.total_size_bytes)
        unit_index = 0
        while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
            size /= 1024
            unit_index += 1

        text = f"{size:.2f}".rstrip("0").rstrip(".")
        return f"{text} {_SIZE_UNITS[unit_index]}"


@dataclass(frozen=True)
class CallerIdentity:
    """
    Identity of an accounting caller as verified by the transport.

    Comes from the signing gateway's request context, never from the
    request body.
    """
    identity_id: Optional[str]
    principal_arn: Optional[str] = None


@dataclass(frozen=True)
class StoredFile:
    """One object under a prefix, with a temporary download link."""
    key: str
    size: int
    last_modified: Optional[datetime]
    download_url: str


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

@dataclass
class BatchItem:
    """One source inside a batch and what happened to it."""
    source: Any  # a MediaSource; kept loose to avoid an import cycle
    status: ItemStatus = ItemStatus.PENDING
    outcome: Optional[TerminalOutcome] = None
    key: Optional[str] = None

    @property
    def identifier(self) -> str:
        return self.source.identifier


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot emitted while a batch runs."""
    current_index: int  # zero-based
    total_count: int
    current_identifier: str
    uploaded_count: int
    skipped_count: int
    failed_count: int
    item_progress: Optional[UploadInProgress] = None


@dataclass
class BatchResult:
    """
    Final accounting of a batch.

    failed_items keeps input order and is the list to hand back to
    upload_batch for a retry. pending_items holds the interrupted item and
    anything never attempted when the batch was cancelled or aborted.
    """
    items: list[BatchItem] = field(default_factory=list)
    uploaded_count: int = 0
    skipped_count: int = 0
    failed_items: list[Any] = field(default_factory=list)
    pending_items: list[Any] = field(default_factory=list)
    cancelled: bool = False
    aborted_reason: Optional[UploadError] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def failed_count(self) -> int:
        return len(self.failed_items)

    @property
    def succeeded_count(self) -> int:
        return self.uploaded_count + self.skipped_count

    @property
    def succeeded_items(self) -> list[Any]:
        """Sources that are now safely in the store (new or duplicate)."""
        return [
            item.source for item in self.items
            if item.status in (ItemStatus.SUCCEEDED, ItemStatus.SKIPPED)
        ]

    @property
    def outcomes(self) -> list[TerminalOutcome]:
        """Terminal outcomes in submission order, for attempted items only."""
        return [item.outcome for item in self.items if item.outcome is not None]

    @property
    def is_complete_success(self) -> bool:
        return (
            not self.failed_items
            and not self.pending_items
            and not self.cancelled
            and self.aborted_reason is None
        )
