"""
Upload orchestration.

UploadService writes one file to object storage under a fresh key and then
waits for the backend to assign it a CID. It knows nothing about HTTP;
the route turns its results into responses.
"""

import logging
import mimetypes
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import quote

from .models import PollResult, StoredUpload, build_object_key
from .poller import CidPoller

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ObjectStore(Protocol):
    """Write side of object storage, as seen by the upload flow."""

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> None:
        ...


def resolve_content_type(filename: str, declared: Optional[str]) -> str:
    """
    Pick the content type to store with an object.

    A specific declared type wins. Generic or missing types fall back to
    a guess from the file extension.
    """
    if declared and declared != DEFAULT_CONTENT_TYPE:
        return declared

    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_CONTENT_TYPE


class UploadService:
    """Stores uploads and waits for their CIDs."""

    def __init__(
        self,
        storage: ObjectStore,
        poller: CidPoller,
        bucket: str,
        max_wait_seconds: float = 30.0,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._storage = storage
        self._poller = poller
        self._bucket = bucket
        self._max_wait_seconds = max_wait_seconds
        self._max_attempts = max_attempts

    async def store(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> StoredUpload:
        """
        Write data under a new collision-resistant key.

        The original filename travels in the object's metadata, percent-encoded
        because S3 user metadata must be ASCII. Storage failures propagate.
        """
        key = build_object_key(filename)
        resolved_type = resolve_content_type(filename, content_type)

        await self._storage.put_object(
            bucket=self._bucket,
            key=key,
            data=data,
            content_type=resolved_type,
            metadata={"originalname": quote(filename)},
        )

        logger.info(
            "Stored upload",
            extra={"key": key, "upload_filename": filename, "size_bytes": len(data)}
        )

        return StoredUpload(
            bucket=self._bucket,
            key=key,
            filename=filename,
            content_type=resolved_type,
            size_bytes=len(data),
        )

    async def wait_for_cid(
        self,
        upload: StoredUpload,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> PollResult:
        return await self._poller.poll(
            upload.bucket,
            upload.key,
            max_wait_seconds=self._max_wait_seconds,
            max_attempts=self._max_attempts,
            is_disconnected=is_disconnected,
        )
