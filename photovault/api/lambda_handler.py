"""
AWS Lambda entry point.

Serves the accounting contract behind API Gateway with IAM auth. The
gateway verifies the SigV4 signature and fills in
requestContext.identity, which is where the caller identity comes from.

Routes on the request path: anything ending in "/files" is a file
listing, everything else is a statistics request.
"""

import asyncio
import base64
import json
import logging
from typing import Any, Optional

from ..config.settings import Settings, get_settings
from ..core.media.accounting import StorageAccountingService
from ..core.media.errors import PhotoVaultError
from ..core.media.models import CallerIdentity
from ..core.media.store import ObjectStore
from ..infrastructure.storage.client import StorageConfig, create_object_store
from .errors import error_response, internal_error_body

logger = logging.getLogger(__name__)

RESPONSE_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
}


def handler(event: dict[str, Any], context: Any = None, store: Optional[ObjectStore] = None) -> dict[str, Any]:
    """Lambda handler. store is injectable for tests; otherwise built from settings."""
    try:
        settings = get_settings()
        service = _build_service(settings, store)
        caller = caller_from_event(event)
        body = _parse_body(event)
        prefix = body.get("prefix") or ""

        if _is_files_request(event):
            files = asyncio.run(service.list_files(prefix, caller, month=body.get("month")))
            return _response(200, {
                "message": f"Found {len(files)} files",
                "files": [
                    {
                        "key": f.key,
                        "size": f.size,
                        "lastModified": f.last_modified.isoformat() if f.last_modified else None,
                        "downloadUrl": f.download_url,
                    }
                    for f in files
                ],
                "urlExpiresIn": f"{service.presign_expiry_seconds} seconds",
            })

        stats = asyncio.run(service.get_stats(prefix, caller))
        return _response(200, {
            "objectCount": stats.object_count,
            "totalSize": stats.total_size_bytes,
        })

    except PhotoVaultError as e:
        status_code, payload = error_response(e)
        return _response(status_code, payload)
    except Exception as e:
        logger.error("Unhandled exception in Lambda handler", extra={"error": str(e)}, exc_info=e)
        return _response(500, internal_error_body(str(e)))


def caller_from_event(event: dict[str, Any]) -> CallerIdentity:
    """Read the gateway-verified identity from the request context."""
    identity = (event.get("requestContext") or {}).get("identity") or {}
    return CallerIdentity(
        identity_id=identity.get("cognitoIdentityId") or None,
        principal_arn=identity.get("userArn") or None,
    )


def _build_service(settings: Settings, store: Optional[ObjectStore]) -> StorageAccountingService:
    if store is None:
        store = create_object_store(
            config=StorageConfig(
                bucket_name=settings.s3_bucket_name,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key_id=settings.s3_access_key_id,
                secret_access_key=settings.s3_secret_access_key,
            ),
            mock_mode=settings.s3_mock_mode,
        )
    return StorageAccountingService(
        store=store,
        page_size=settings.list_page_size,
        required_role_marker=settings.required_role_marker,
        presign_expiry_seconds=settings.presigned_url_expiry_seconds,
    )


def _parse_body(event: dict[str, Any]) -> dict[str, Any]:
    raw = event.get("body")
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    try:
        body = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        logger.warning("Request body is not valid JSON")
        return {}
    return body if isinstance(body, dict) else {}


def _is_files_request(event: dict[str, Any]) -> bool:
    path = event.get("path") or event.get("rawPath") or ""
    return path.rstrip("/").endswith("/files")


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(RESPONSE_HEADERS),
        "body": json.dumps(body),
    }
