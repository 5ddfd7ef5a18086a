"""
Object storage client for photo uploads.

Supports AWS S3 and S3-compatible stores (Cloudflare R2, MinIO) through
boto3, with a mock mode for local development and tests.

Mock mode stores objects in memory, enabling the full upload and
accounting flow without provisioning a bucket.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError

from ...core.media.models import Credentials
from ...core.media.store import (
    ObjectInfo,
    ObjectNotFoundError,
    ObjectPage,
    ObjectStore,
    StorageAccessDeniedError,
    StorageError,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_ACCESS_DENIED_CODES = {"403", "AccessDenied", "Forbidden", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


@dataclass
class StorageConfig:
    """
    Configuration for S3/R2-compatible storage.

    Using a dataclass instead of raw parameters means:
    - Configuration is explicit and documented
    - Easy to validate at construction time
    - Simple to create test configurations
    """
    bucket_name: str
    region: str = "eu-central-1"
    endpoint_url: Optional[str] = None  # None means AWS S3
    access_key_id: str = ""
    secret_access_key: str = ""

    @property
    def public_base_url(self) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "Unknown"))


def _translate(error: Exception, action: str, key: str) -> StorageError:
    """Map a boto error onto our storage exceptions."""
    if isinstance(error, ClientError):
        code = _error_code(error)
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(f"{key} not found")
        if code in _ACCESS_DENIED_CODES:
            return StorageAccessDeniedError(f"{action} denied ({code})")
        return StorageError(f"{action} failed ({code}): {error}")
    return StorageError(f"{action} failed: {error}")


class S3ObjectStore:
    """
    S3-compatible object storage client.

    Uses boto3 because S3, R2 and MinIO all speak the same API. This
    abstraction means we can point at any of them with only config changes.

    boto3 is synchronous, so every call runs in a worker thread through
    asyncio.to_thread. That keeps the event loop free, which is what lets
    the upload engine react to cancellation while a part is in flight.

    Objects are written without an ACL: the bucket is private and access
    goes through presigned URLs or IAM.
    """

    def __init__(self, config: StorageConfig, credentials: Optional[Credentials] = None) -> None:
        """
        Initialize the client with boto3.

        Session credentials (from the identity provider) win over static
        keys; with neither, boto3's default credential chain applies.
        """
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        client_kwargs = {"region_name": config.region}
        if config.endpoint_url:
            # R2/MinIO want v4 signatures and path-style addressing
            client_kwargs["endpoint_url"] = config.endpoint_url
            client_kwargs["config"] = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
            )

        if credentials is not None:
            client_kwargs["aws_access_key_id"] = credentials.access_key_id
            client_kwargs["aws_secret_access_key"] = credentials.secret_access_key
            client_kwargs["aws_session_token"] = credentials.session_token
        elif config.access_key_id:
            client_kwargs["aws_access_key_id"] = config.access_key_id
            client_kwargs["aws_secret_access_key"] = config.secret_access_key

        self._s3_client = boto3.client("s3", **client_kwargs)

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url or "aws",
                "session_credentials": credentials is not None,
            }
        )

    async def head_object(self, key: str) -> ObjectInfo:
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except (ClientError, BotoCoreError) as e:
            error = _translate(e, "Existence check", key)
            if not isinstance(error, ObjectNotFoundError):
                logger.error(
                    "Failed to probe object",
                    extra={"key": key, "error": str(e)}
                )
            raise error

        return ObjectInfo(
            key=key,
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            etag=response.get("ETag"),
        )

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "size_bytes": len(data), "error": str(e)}
            )
            raise _translate(e, "Upload", key)

        logger.debug("Uploaded object", extra={"key": key, "size_bytes": len(data)})

    async def create_multipart_upload(self, key: str, content_type: str) -> str:
        try:
            response = await asyncio.to_thread(
                self._s3_client.create_multipart_upload,
                Bucket=self._config.bucket_name,
                Key=key,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to start multipart upload", extra={"key": key, "error": str(e)})
            raise _translate(e, "Multipart start", key)

        return response["UploadId"]

    async def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        try:
            response = await asyncio.to_thread(
                self._s3_client.upload_part,
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to upload part",
                extra={"key": key, "part_number": part_number, "error": str(e)}
            )
            raise _translate(e, "Part upload", key)

        return response["ETag"]

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[tuple[int, str]],
    ) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.complete_multipart_upload,
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"PartNumber": number, "ETag": etag}
                        for number, etag in parts
                    ]
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to complete multipart upload", extra={"key": key, "error": str(e)})
            raise _translate(e, "Multipart completion", key)

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.abort_multipart_upload,
                Bucket=self._config.bucket_name,
                Key=key,
                UploadId=upload_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "Multipart abort", key)

        logger.debug("Aborted multipart upload", extra={"key": key, "upload_id": upload_id})

    async def list_objects_page(
        self,
        prefix: str,
        max_keys: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ObjectPage:
        params = {
            "Bucket": self._config.bucket_name,
            "Prefix": prefix,
            "MaxKeys": max_keys,
        }
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = await asyncio.to_thread(self._s3_client.list_objects_v2, **params)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to list objects",
                extra={"prefix": prefix, "error": str(e)}
            )
            raise _translate(e, "Listing", prefix)

        objects = [
            ObjectInfo(
                key=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=obj.get("LastModified"),
                etag=obj.get("ETag"),
            )
            for obj in response.get("Contents", [])
        ]

        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ObjectPage(objects=objects, next_token=next_token)

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        """
        Generate a temporary download URL.

        Presigned URLs let clients download straight from the bucket
        without the bucket ever being public.
        """
        try:
            return await asyncio.to_thread(
                self._s3_client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self._config.bucket_name, "Key": key},
                ExpiresIn=expiry_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"key": key, "error": str(e)}
            )
            raise _translate(e, "Presigned URL generation", key)

    def object_url(self, key: str) -> str:
        return f"{self._config.public_base_url}/{key}"


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class InMemoryObjectStore:
    """
    In-memory storage for local development and tests.

    Objects live in a dict and "URLs" are mock URIs. Counters record how
    many objects were actually written, which is what duplicate-detection
    tests assert on.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, datetime]] = {}
        self._multipart: dict[str, dict[int, bytes]] = {}
        self.write_count = 0
        self.aborted_uploads: list[str] = []
        logger.info("Initialized mock storage client (in-memory)")

    def seed(self, key: str, data: bytes) -> None:
        """Place an object directly, bypassing upload counters."""
        self._objects[key] = (data, datetime.now(timezone.utc))

    def get(self, key: str) -> Optional[bytes]:
        entry = self._objects.get(key)
        return entry[0] if entry else None

    @property
    def keys(self) -> list[str]:
        return sorted(self._objects)

    @property
    def open_multipart_uploads(self) -> int:
        return len(self._multipart)

    async def head_object(self, key: str) -> ObjectInfo:
        if key not in self._objects:
            raise ObjectNotFoundError(f"{key} not found")
        data, modified = self._objects[key]
        return ObjectInfo(key=key, size=len(data), last_modified=modified)

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self._objects[key] = (bytes(data), datetime.now(timezone.utc))
        self.write_count += 1
        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": len(data)}
        )

    async def create_multipart_upload(self, key: str, content_type: str) -> str:
        upload_id = str(uuid4())
        self._multipart[upload_id] = {}
        return upload_id

    async def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        if upload_id not in self._multipart:
            raise StorageError(f"Unknown upload id: {upload_id}")
        self._multipart[upload_id][part_number] = bytes(data)
        return f"etag-{part_number}"

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[tuple[int, str]],
    ) -> None:
        uploaded = self._multipart.pop(upload_id, None)
        if uploaded is None:
            raise StorageError(f"Unknown upload id: {upload_id}")
        body = b"".join(uploaded[number] for number, _ in sorted(parts))
        self._objects[key] = (body, datetime.now(timezone.utc))
        self.write_count += 1

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._multipart.pop(upload_id, None)
        self.aborted_uploads.append(upload_id)

    async def list_objects_page(
        self,
        prefix: str,
        max_keys: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ObjectPage:
        # token is the last key of the previous page, like StartAfter
        matching = [key for key in sorted(self._objects) if key.startswith(prefix)]
        if continuation_token:
            matching = [key for key in matching if key > continuation_token]

        page_keys = matching[:max_keys]
        objects = []
        for key in page_keys:
            data, modified = self._objects[key]
            objects.append(ObjectInfo(key=key, size=len(data), last_modified=modified))

        next_token = page_keys[-1] if len(matching) > max_keys else None
        return ObjectPage(objects=objects, next_token=next_token)

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        if key not in self._objects:
            raise ObjectNotFoundError(f"{key} not found")
        return f"mock://storage/{key}?expires={expiry_seconds}"

    def object_url(self, key: str) -> str:
        return f"mock://storage/{key}"


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_object_store(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
    credentials: Optional[Credentials] = None,
) -> ObjectStore:
    """
    Create an object store based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory store
        credentials: Session credentials from the identity provider

    Returns:
        ObjectStore implementation (S3 or in-memory)
    """
    if mock_mode:
        return InMemoryObjectStore()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3ObjectStore(config, credentials=credentials)
