"""Upload pipeline data models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from voxstudio.core.exceptions import UploadValidationError

PATH_SEPARATORS = ("/", "\\")


class ConflictPolicy(str, Enum):
    """Rule applied when a create targets a name that already exists."""

    FAIL = "fail"
    REPLACE = "replace"
    RENAME = "rename"


class UploadState(str, Enum):
    """Lifecycle of a single upload."""

    IDLE = "idle"
    SESSION_REQUESTED = "session_requested"
    SESSION_OPEN = "session_open"
    TRANSMITTING = "transmitting"
    COMPLETED = "completed"  # Terminal
    FAILED = "failed"  # Terminal


def validate_segment(segment: str) -> str:
    """Reject empty path segments and segments carrying separators."""
    if not isinstance(segment, str) or not segment.strip():
        raise UploadValidationError("Path segments must be non-empty strings")
    if any(sep in segment for sep in PATH_SEPARATORS):
        raise UploadValidationError(f"Path segment contains a separator: {segment!r}")
    if segment in (".", ".."):
        raise UploadValidationError(f"Invalid path segment: {segment!r}")
    return segment


def validate_segments(segments: Sequence[str]) -> tuple[str, ...]:
    """Validate a destination path and return it as a tuple."""
    if isinstance(segments, str) or not segments:
        raise UploadValidationError("Destination path must be a non-empty sequence of segments")
    return tuple(validate_segment(segment) for segment in segments)


@dataclass(frozen=True)
class FolderHandle:
    """Opaque reference to an existing remote folder."""

    item_id: str
    path: str


@dataclass(frozen=True)
class UploadTarget:
    """Where a file goes and how big it is. Immutable once chunking begins."""

    destination_path: tuple[str, ...]
    file_name: str
    total_size: int

    def __post_init__(self):
        object.__setattr__(self, "destination_path", validate_segments(self.destination_path))
        validate_segment(self.file_name)
        if self.total_size <= 0:
            raise UploadValidationError("total_size must be a positive number of bytes")

    @property
    def item_path(self) -> str:
        return "/".join((*self.destination_path, self.file_name))


@dataclass(frozen=True)
class ResumableSession:
    """Server-issued, time-limited upload endpoint."""

    upload_url: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the session is past its expiry."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


@dataclass(frozen=True)
class ChunkState:
    """Byte range of one chunk: [offset, offset + length - 1] / total_size."""

    offset: int
    length: int
    total_size: int

    @property
    def end(self) -> int:
        """Inclusive last byte index."""
        return self.offset + self.length - 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.offset}-{self.end}/{self.total_size}"

    @property
    def is_final(self) -> bool:
        return self.offset + self.length == self.total_size


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 expiry timestamp as returned by the store."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
