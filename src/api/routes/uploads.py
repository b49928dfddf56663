"""
Upload endpoint.

Flow for POST /upload:
1. x-api-key is checked before anything touches storage
2. The file is written to Filebase under a fresh key
3. We wait (bounded) for Filebase to report the IPFS CID
4. 200 with the CID and links, or 202 if the CID is not there yet

Returning 202 instead of blocking until the CID exists keeps every
request bounded by the configured wait budget.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...core.uploads.models import PollResult, StoredUpload, UploadValidationError
from ..dependencies import AuthenticatedClient, SettingsDep, UploadServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()

PENDING_MESSAGE = "File received. CID not available yet. Try again shortly."


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadData(BaseModel):
    """What we know about an uploaded file."""
    file: str = Field(description="Original filename as sent by the client")
    key: str = Field(description="Storage key of the object")
    file_server_url: str = Field(description="Legacy file server link")
    cid: Optional[str] = Field(default=None, description="IPFS content identifier")
    ipfs_uri: Optional[str] = Field(default=None, description="ipfs:// URI for the CID")
    gateway_url: Optional[str] = Field(default=None, description="HTTP gateway link for the CID")


class UploadResponse(BaseModel):
    """Response body for both 200 and 202."""
    data: UploadData
    msg: Optional[str] = None


class ErrorResponse(BaseModel):
    msg: str
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def build_upload_response(
    upload: StoredUpload,
    result: PollResult,
    file_server_url: str,
    gateway_base_url: str,
) -> tuple[int, UploadResponse]:
    """Shape the HTTP status and body for a stored upload."""
    data = UploadData(
        file=upload.filename,
        key=upload.key,
        file_server_url=f"{file_server_url.rstrip('/')}/{upload.filename}",
    )

    if result.found:
        data.cid = result.cid
        data.ipfs_uri = f"ipfs://{result.cid}"
        data.gateway_url = f"{gateway_base_url.rstrip('/')}/{result.cid}"
        return status.HTTP_200_OK, UploadResponse(data=data)

    return status.HTTP_202_ACCEPTED, UploadResponse(msg=PENDING_MESSAGE, data=data)


async def read_within_limit(file: UploadFile, max_size_mb: int) -> bytes:
    """
    Read an upload, refusing anything over max_size_mb with a 413.

    The size the multipart parser recorded is checked first, so an
    oversized file is rejected without being copied into memory.
    """
    max_bytes = max_size_mb * 1024 * 1024
    too_large = HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"File too large. Maximum size: {max_size_mb}MB",
    )

    if file.size is not None and file.size > max_bytes:
        raise too_large

    data = await file.read()
    if len(data) > max_bytes:
        raise too_large
    return data


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=UploadResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Upload a file and return its CID",
    description="Store the file in Filebase and wait for its IPFS CID.",
    responses={
        202: {"description": "Stored, CID not available yet", "model": UploadResponse},
        400: {"description": "No file sent", "model": ErrorResponse},
        401: {"description": "Missing or invalid API key", "model": ErrorResponse},
        413: {"description": "File too large", "model": ErrorResponse},
        500: {"description": "Upload failed", "model": ErrorResponse},
    },
)
async def upload_file(
    request: Request,
    api_key: AuthenticatedClient,
    settings: SettingsDep,
    uploads: UploadServiceDep,
    file: Annotated[Optional[UploadFile], File(description="File to store")] = None,
):
    if file is None or not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file sent (field: file).",
        )

    data = await read_within_limit(file, settings.max_file_size_mb)

    logger.info(
        "Upload started",
        extra={
            "upload_filename": file.filename,
            "content_type": file.content_type,
            "size_bytes": len(data),
        }
    )

    try:
        stored = await uploads.store(
            filename=file.filename,
            data=data,
            content_type=file.content_type,
        )
        result = await uploads.wait_for_cid(stored, is_disconnected=request.is_disconnected)
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(
            "Upload failed",
            extra={"upload_filename": file.filename, "error": str(e)},
            exc_info=e,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(msg="Upload failed", error=str(e) or "unknown_error").model_dump(),
        )

    status_code, body = build_upload_response(
        stored,
        result,
        file_server_url=settings.file_server_url,
        gateway_base_url=settings.ipfs_gateway_url,
    )

    logger.info(
        "Upload finished",
        extra={
            "key": stored.key,
            "status_code": status_code,
            "poll_status": result.status.value,
            "attempts": result.attempts,
        }
    )

    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
