"""
Upload handling logic.

Contains the domain models, the CID poller and the upload service.
"""

from .models import (
    PollResult,
    PollStatus,
    StoredUpload,
    UploadValidationError,
    build_object_key,
    extract_cid,
)
from .poller import CidPoller, backoff_delays
from .service import UploadService

__all__ = [
    "PollResult",
    "PollStatus",
    "StoredUpload",
    "UploadValidationError",
    "build_object_key",
    "extract_cid",
    "CidPoller",
    "backoff_delays",
    "UploadService",
]
