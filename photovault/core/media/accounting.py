"""
Storage accounting service.

Answers "how many objects and how many bytes does this user have" by
enumerating their namespace. Nothing is cached: each call lists the store
fresh, page by page, so a namespace of any size is counted completely.

Authorization is done here, not in the transport. The caller identity must
come from something that verified it (the signing gateway or the Lambda
request context); a prefix in the request body proves nothing.
"""

import logging
from datetime import datetime
from typing import Optional

from .errors import ForbiddenError, InvalidArgumentError, NotAuthenticatedError, UnavailableError
from .keys import MONTH_FORMAT, identity_from_prefix, namespace_root
from .models import CallerIdentity, StorageStats, StoredFile
from .store import ObjectInfo, ObjectStore, StorageError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000
DEFAULT_PRESIGN_EXPIRY_SECONDS = 3600


class StorageAccountingService:
    """Computes per-prefix statistics and file listings."""

    def __init__(
        self,
        store: ObjectStore,
        page_size: int = MAX_PAGE_SIZE,
        required_role_marker: str = "",
        presign_expiry_seconds: int = DEFAULT_PRESIGN_EXPIRY_SECONDS,
    ) -> None:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        self._store = store
        self._page_size = page_size
        self._role_marker = required_role_marker
        self._presign_expiry = presign_expiry_seconds

    @property
    def presign_expiry_seconds(self) -> int:
        return self._presign_expiry

    async def get_stats(self, prefix: str, caller: CallerIdentity) -> StorageStats:
        """
        Count objects and bytes under prefix.

        Raises:
            InvalidArgumentError: prefix is empty or malformed
            NotAuthenticatedError: caller has no verified identity
            ForbiddenError: caller does not own the prefix
            UnavailableError: the store could not be listed
        """
        self.authorize(prefix, caller)

        object_count = 0
        total_size = 0
        pages = 0
        async for page_objects in self._iter_pages(namespace_root(prefix)):
            pages += 1
            object_count += len(page_objects)
            total_size += sum(obj.size for obj in page_objects)

        logger.info(
            "Computed storage statistics",
            extra={
                "prefix": prefix,
                "object_count": object_count,
                "total_size": total_size,
                "pages": pages,
            }
        )
        return StorageStats(object_count=object_count, total_size_bytes=total_size)

    async def list_files(
        self,
        prefix: str,
        caller: CallerIdentity,
        month: Optional[str] = None,
    ) -> list[StoredFile]:
        """
        List the caller's objects with temporary download links.

        month ("YYYY-MM") narrows the listing to one month bucket.
        """
        self.authorize(prefix, caller)

        listing_prefix = namespace_root(prefix)
        if month is not None:
            listing_prefix = f"{listing_prefix}{_validate_month(month)}/"

        files: list[StoredFile] = []
        try:
            async for page_objects in self._iter_pages(listing_prefix):
                for obj in page_objects:
                    url = await self._store.get_presigned_url(obj.key, self._presign_expiry)
                    files.append(StoredFile(
                        key=obj.key,
                        size=obj.size,
                        last_modified=obj.last_modified,
                        download_url=url,
                    ))
        except StorageError as e:
            logger.error("Failed to sign download URLs", extra={"prefix": prefix, "error": str(e)})
            raise UnavailableError(f"Could not list files: {e}") from e

        logger.info("Listed files", extra={"prefix": prefix, "count": len(files)})
        return files

    def authorize(self, prefix: str, caller: CallerIdentity) -> None:
        """Check that caller may read prefix. Raises on any failure."""
        owner_id = identity_from_prefix(prefix)

        if not caller.identity_id:
            raise NotAuthenticatedError("Unauthorized - No verified caller identity")

        if self._role_marker:
            if not caller.principal_arn or self._role_marker not in caller.principal_arn:
                logger.warning(
                    "Caller principal lacks the required role",
                    extra={"principal_arn": caller.principal_arn, "identity_id": caller.identity_id}
                )
                raise ForbiddenError("Forbidden - Invalid role")

        if caller.identity_id != owner_id:
            logger.warning(
                "Security: identity attempted to access another user's statistics",
                extra={"identity_id": caller.identity_id, "prefix": prefix}
            )
            raise ForbiddenError("Forbidden - You can only access your own statistics")

    async def _iter_pages(self, listing_prefix: str):
        """Yield each page's objects until the store stops returning a cursor."""
        token: Optional[str] = None
        while True:
            try:
                page = await self._store.list_objects_page(
                    listing_prefix,
                    max_keys=self._page_size,
                    continuation_token=token,
                )
            except StorageError as e:
                logger.error(
                    "Failed to list objects",
                    extra={"prefix": listing_prefix, "error": str(e)}
                )
                raise UnavailableError(f"Could not list objects: {e}") from e

            objects: list[ObjectInfo] = page.objects
            yield objects

            if not page.next_token:
                break
            token = page.next_token


def _validate_month(month: str) -> str:
    if not isinstance(month, str):
        raise InvalidArgumentError("month must have the form YYYY-MM")
    try:
        if len(month) != 7:
            raise ValueError(month)
        datetime.strptime(month, MONTH_FORMAT)
    except ValueError:
        raise InvalidArgumentError("month must have the form YYYY-MM")
    return month
