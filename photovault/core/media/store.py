"""
Object store protocol.

Core logic talks to storage only through this protocol, so tests can
provide the in-memory mock and we can swap S3, R2 or MinIO without
touching the engine. Implementations live in infrastructure.storage.

All methods are async. The S3 implementation pushes blocking boto3 calls
onto a worker thread so the event loop stays free to notice cancellation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class ObjectNotFoundError(StorageError):
    """The probed key does not exist. Expected, not a failure."""
    pass


class StorageAccessDeniedError(StorageError):
    """The store refused the operation for these credentials."""
    pass


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata for one stored object."""
    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass(frozen=True)
class ObjectPage:
    """One page of a listing plus the cursor for the next one."""
    objects: list[ObjectInfo] = field(default_factory=list)
    next_token: Optional[str] = None


class ObjectStore(Protocol):
    """Protocol for the object storage operations the core needs."""

    async def head_object(self, key: str) -> ObjectInfo:
        """Metadata-only existence probe. Raises ObjectNotFoundError when absent."""
        ...

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Single-request upload for content that fits in one chunk."""
        ...

    async def create_multipart_upload(self, key: str, content_type: str) -> str:
        """Start a multipart upload and return its upload id."""
        ...

    async def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        """Upload one part and return its ETag."""
        ...

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[tuple[int, str]],
    ) -> None:
        """Assemble uploaded parts, given as (part_number, etag) pairs."""
        ...

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Discard an unfinished multipart upload."""
        ...

    async def list_objects_page(
        self,
        prefix: str,
        max_keys: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ObjectPage:
        """List up to max_keys objects under prefix, starting at the cursor."""
        ...

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        """Generate a temporary download URL."""
        ...

    def object_url(self, key: str) -> str:
        """Canonical (unsigned) URL of an object."""
        ...
