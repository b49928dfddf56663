"""
Domain models for the upload gateway.

These models have no dependencies on FastAPI or boto3. They describe what
was stored, how a wait for its CID ended, and how storage keys are built.
"""

import re
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Mapping, Optional
from uuid import uuid4

# Checked in this order; the backend is not consistent about casing.
CID_METADATA_KEYS = ("cid", "CID", "Cid")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class UploadValidationError(ValueError):
    """Raised when an upload cannot be accepted as given."""
    pass


class PollStatus(Enum):
    """How a wait for a CID ended."""
    FOUND = "found"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"  # Client went away; nobody reads the result


@dataclass(frozen=True)
class PollResult:
    """
    Outcome of waiting for an object's CID.

    A CID is present exactly when the status is FOUND.
    """
    status: PollStatus
    cid: Optional[str] = None
    attempts: int = 0
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        if (self.status is PollStatus.FOUND) != bool(self.cid):
            raise ValueError("cid must be set if and only if status is FOUND")

    @property
    def found(self) -> bool:
        return self.status is PollStatus.FOUND


@dataclass(frozen=True)
class StoredUpload:
    """An object written to storage on behalf of one upload request."""
    bucket: str
    key: str
    filename: str
    content_type: str
    size_bytes: int


def extract_cid(metadata: Optional[Mapping[str, str]]) -> Optional[str]:
    """
    Return the trimmed CID from object metadata, or None.

    The first key in CID_METADATA_KEYS holding a non-blank value wins.
    """
    if not metadata:
        return None

    for name in CID_METADATA_KEYS:
        value = metadata.get(name)
        if value and value.strip():
            return value.strip()

    return None


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client-supplied filename to something safe inside a key.

    Directory parts are dropped and anything outside [A-Za-z0-9._-]
    becomes an underscore.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name
    name = _UNSAFE_KEY_CHARS.sub("_", name).strip("._")
    if not name:
        raise UploadValidationError(f"Unusable filename: {filename!r}")
    return name


def build_object_key(
    filename: str,
    now: Optional[float] = None,
    token: Optional[str] = None,
) -> str:
    """
    Build a collision-resistant storage key for an uploaded file.

    Format: {epoch_ms}-{token}-{sanitized filename}. The token defaults to
    a random UUID, so two uploads of the same file never share a key.
    """
    if not filename:
        raise UploadValidationError("Filename is required")

    timestamp_ms = int((time.time() if now is None else now) * 1000)
    return f"{timestamp_ms}-{token or uuid4()}-{sanitize_filename(filename)}"
