"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests via app.dependency_overrides
- Configuration is built once and passed down explicitly

Each dependency is a function that FastAPI calls when needed.
"""

import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.uploads.poller import CidPoller
from ..core.uploads.service import UploadService
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: Optional[str] = Security(api_key_header),
) -> str:
    """
    Validate the shared secret from the x-api-key header.

    A single static key, compared in constant time. An unconfigured key
    rejects every request rather than letting everyone in.

    Raises 401 if the key is missing, unconfigured or wrong.
    """
    if not settings.api_key or not api_key:
        logger.warning("Request missing API key or no key configured")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Auth failed. Provide a valid x-api-key header.",
        )

    if not secrets.compare_digest(api_key.encode(), settings.api_key.encode()):
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:4]}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Auth failed. Provide a valid x-api-key header.",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def build_storage_client(settings: Settings) -> StorageClient:
    """Create the storage client described by settings."""
    if settings.storage_mock_mode:
        return create_storage_client(
            mock_mode=True,
            cid_after_lookups=settings.mock_cid_after_lookups,
        )

    config = StorageConfig(
        access_key_id=settings.filebase_access_key,
        secret_access_key=settings.filebase_secret_key,
        endpoint_url=settings.filebase_endpoint_url,
        region=settings.filebase_region,
    )
    return create_storage_client(config=config)


def get_storage_client(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    """
    Provide the application's shared storage client.

    The client is created once in the app lifespan and kept on app.state.
    If the lifespan did not run (e.g. an ASGI transport in tests) it is
    created on first use and cached the same way.
    """
    storage = getattr(request.app.state, "storage_client", None)
    if storage is None:
        storage = build_storage_client(settings)
        request.app.state.storage_client = storage
        logger.info("Created storage client on first request")
    return storage


def get_cid_poller(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
) -> CidPoller:
    """Provide a poller using the configured backoff."""
    return CidPoller(
        storage,
        initial_delay=settings.cid_poll_initial_delay_seconds,
        max_delay=settings.cid_poll_max_delay_seconds,
    )


def get_upload_service(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    poller: Annotated[CidPoller, Depends(get_cid_poller)],
) -> UploadService:
    """
    Provide the upload service.

    It holds no state of its own, so a new instance per request is fine.
    """
    return UploadService(
        storage=storage,
        poller=poller,
        bucket=settings.bucket_name,
        max_wait_seconds=settings.cid_max_wait_seconds,
        max_attempts=settings.cid_max_attempts,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedClient = Annotated[str, Depends(verify_api_key)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
UploadServiceDep = Annotated[UploadService, Depends(get_upload_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
