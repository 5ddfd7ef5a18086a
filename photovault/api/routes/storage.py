"""
Storage accounting endpoints.

Both endpoints authorize against the caller identity the gateway verified
(see dependencies.get_caller_identity). The prefix in the body is what
the caller asks about; the service checks that they own it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ...core.media.errors import PhotoVaultError
from ..dependencies import AccountingServiceDep, CallerDep
from ..errors import error_response

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class StatsRequest(BaseModel):
    """Request body for statistics."""
    # optional here so a missing prefix gets the 400 body, not a 422
    prefix: Optional[str] = Field(None, description="Storage prefix, '<email>_<identityId>'")


class StatsResponse(BaseModel):
    """Object count and total bytes under a prefix."""
    model_config = ConfigDict(populate_by_name=True)

    object_count: int = Field(serialization_alias="objectCount", description="Number of stored objects")
    total_size: int = Field(serialization_alias="totalSize", description="Total size in bytes")


class FilesRequest(BaseModel):
    """Request body for a file listing."""
    prefix: Optional[str] = Field(None, description="Storage prefix, '<email>_<identityId>'")
    month: Optional[str] = Field(None, description="Restrict to one month bucket, 'YYYY-MM'")


class FileEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    size: int
    last_modified: Optional[str] = Field(None, serialization_alias="lastModified")
    download_url: str = Field(serialization_alias="downloadUrl")


class FilesResponse(BaseModel):
    """Files under a prefix with temporary download links."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    files: list[FileEntry]
    url_expires_in: str = Field(serialization_alias="urlExpiresIn")


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or malformed prefix"},
    401: {"model": ErrorResponse, "description": "No verified caller identity"},
    403: {"model": ErrorResponse, "description": "Caller does not own the prefix"},
    500: {"model": ErrorResponse, "description": "Storage unavailable"},
}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/stats",
    response_model=StatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Get storage statistics",
    description="Count objects and bytes stored under the caller's prefix",
    responses=_ERROR_RESPONSES,
)
async def get_storage_stats(
    request: StatsRequest,
    caller: CallerDep,
    service: AccountingServiceDep,
):
    try:
        stats = await service.get_stats(request.prefix or "", caller)
    except PhotoVaultError as e:
        status_code, body = error_response(e)
        return JSONResponse(status_code=status_code, content=body)

    return StatsResponse(object_count=stats.object_count, total_size=stats.total_size_bytes)


@router.post(
    "/files",
    response_model=FilesResponse,
    status_code=status.HTTP_200_OK,
    summary="List stored files",
    description="List the caller's objects with presigned download URLs",
    responses=_ERROR_RESPONSES,
)
async def list_storage_files(
    request: FilesRequest,
    caller: CallerDep,
    service: AccountingServiceDep,
):
    try:
        files = await service.list_files(request.prefix or "", caller, month=request.month)
    except PhotoVaultError as e:
        status_code, body = error_response(e)
        return JSONResponse(status_code=status_code, content=body)

    return FilesResponse(
        message=f"Found {len(files)} files",
        files=[
            FileEntry(
                key=f.key,
                size=f.size,
                last_modified=f.last_modified.isoformat() if f.last_modified else None,
                download_url=f.download_url,
            )
            for f in files
        ],
        url_expires_in=f"{service.presign_expiry_seconds} seconds",
    )
