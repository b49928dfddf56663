"""
Object storage client for uploaded files.

Targets Filebase through its S3-compatible API. Filebase pins every object
to IPFS after the write completes and records the resulting CID in the
object's user metadata, which is why callers read metadata back after a put.

Mock mode stores objects in memory and assigns a fake CID after a
configurable number of metadata lookups, enabling the full upload flow
without provisioning actual object storage.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for an S3-compatible store."""
    access_key_id: str
    secret_access_key: str
    endpoint_url: str
    region: str = "us-east-1"


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means tests can provide doubles and we can
    swap storage backends without changing dependent code.
    """

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        """Write one object."""
        ...

    async def get_object_metadata(
        self,
        bucket: str,
        key: str,
    ) -> dict[str, str]:
        """Return the object's user metadata (empty if none yet)."""
        ...


class S3StorageClient:
    """
    S3-compatible object storage client.

    boto3 is synchronous, so every call runs in a worker thread via
    asyncio.to_thread. A single boto3 client is thread-safe and is shared
    by all requests.
    """

    def __init__(self, config: StorageConfig) -> None:
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage client",
            extra={"endpoint": config.endpoint_url, "region": config.region}
        )

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e

        logger.debug(
            "Uploaded object",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )

    async def get_object_metadata(self, bucket: str, key: str) -> dict[str, str]:
        """
        HeadObject and return its user metadata.

        A 404 right after a put is normal on eventually consistent stores,
        so failures are raised as StorageError for the caller to decide.
        """
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=bucket,
                Key=key,
            )
        except Exception as e:
            raise StorageError(f"Metadata lookup failed: {e}") from e

        return dict(response.get('Metadata') or {})


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass
class _MockObject:
    data: bytes
    content_type: str
    metadata: dict[str, str] = field(default_factory=dict)
    lookups: int = 0


class MockStorageClient:
    """
    In-memory storage for local development and tests.

    Objects live in a dictionary keyed by (bucket, key). The CID shows up
    in an object's metadata on the cid_after_lookups-th metadata lookup,
    imitating a backend that pins content asynchronously. Every call is
    recorded so tests can assert on what reached storage.
    """

    def __init__(self, cid_after_lookups: int = 1) -> None:
        self._objects: dict[tuple[str, str], _MockObject] = {}
        self._cid_after_lookups = cid_after_lookups
        self.put_calls: list[tuple[str, str]] = []
        self.metadata_calls: list[tuple[str, str]] = []
        logger.info("Initialized mock storage client (in-memory)")

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        self.put_calls.append((bucket, key))
        self._objects[(bucket, key)] = _MockObject(
            data=data,
            content_type=content_type,
            metadata=dict(metadata or {}),
        )

        logger.debug(
            "Stored object in mock storage",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )

    async def get_object_metadata(self, bucket: str, key: str) -> dict[str, str]:
        self.metadata_calls.append((bucket, key))

        obj = self._objects.get((bucket, key))
        if obj is None:
            raise StorageError(f"Object not found: {bucket}/{key}")

        obj.lookups += 1
        if obj.lookups >= self._cid_after_lookups and "cid" not in obj.metadata:
            obj.metadata["cid"] = mock_cid(obj.data)

        return dict(obj.metadata)

    def get_object(self, bucket: str, key: str) -> bytes:
        """Return stored bytes. Test helper, not part of StorageClient."""
        obj = self._objects.get((bucket, key))
        if obj is None:
            raise StorageError(f"Object not found: {bucket}/{key}")
        return obj.data


def mock_cid(data: bytes) -> str:
    """Deterministic CID-looking identifier for mock mode."""
    return "bafkmock" + hashlib.sha256(data).hexdigest()[:40]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
    cid_after_lookups: int = 1,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return in-memory client
        cid_after_lookups: Mock only, lookups before a CID appears

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient(cid_after_lookups=cid_after_lookups)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
