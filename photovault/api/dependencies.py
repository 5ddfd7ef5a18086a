"""
FastAPI dependency injection.

Dependencies provide the object store, the accounting service and the
verified caller identity to route handlers. Routes never build their own
collaborators, so tests can override any of these with
app.dependency_overrides.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request

from ..config.settings import Settings, get_settings
from ..core.media.accounting import StorageAccountingService
from ..core.media.models import CallerIdentity
from ..core.media.store import ObjectStore
from ..infrastructure.storage.client import StorageConfig, create_object_store

logger = logging.getLogger(__name__)

# Global mock instance (shared across requests for testing)
_mock_object_store: Optional[ObjectStore] = None


# ---------------------------------------------------------------------------
# Caller Identity
# ---------------------------------------------------------------------------

def get_caller_identity(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> CallerIdentity:
    """
    Read the caller identity the signing gateway verified.

    The gateway strips these headers from client requests and sets them
    from the verified signature, so they are trusted here. The request
    body is never consulted for identity.
    """
    identity_id = request.headers.get(settings.identity_id_header) or None
    principal_arn = request.headers.get(settings.principal_arn_header) or None
    return CallerIdentity(identity_id=identity_id, principal_arn=principal_arn)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_object_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ObjectStore:
    """
    Provide the object store.

    In mock mode, we reuse the same store across requests so that seeded
    objects persist during the testing session.
    """
    global _mock_object_store

    if settings.s3_mock_mode:
        if _mock_object_store is None:
            _mock_object_store = create_object_store(mock_mode=True)
            logger.info("Created shared mock object store for session")
        return _mock_object_store

    config = StorageConfig(
        bucket_name=settings.s3_bucket_name,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
    )
    store = create_object_store(config=config)
    logger.debug("Created S3 object store")
    return store


def get_accounting_service(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[ObjectStore, Depends(get_object_store)],
) -> StorageAccountingService:
    """Provide the accounting service. Stateless, so one per request."""
    return StorageAccountingService(
        store=store,
        page_size=settings.list_page_size,
        required_role_marker=settings.required_role_marker,
        presign_expiry_seconds=settings.presigned_url_expiry_seconds,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_settings)]
CallerDep = Annotated[CallerIdentity, Depends(get_caller_identity)]
AccountingServiceDep = Annotated[StorageAccountingService, Depends(get_accounting_service)]
