"""Upload API models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from voxstudio.upload.models import ConflictPolicy


class CreateSessionRequest(BaseModel):
    """Request model for creating an upload session."""

    project_name: str
    stage: str = "stage1"
    category: str = "videos"
    file_name: str
    file_size: int = Field(..., gt=0)
    conflict_policy: Optional[ConflictPolicy] = None


class CreateSessionResponse(BaseModel):
    """Response model for upload session creation."""

    upload_url: str
    expires_at: Optional[datetime] = None
    chunk_size: int


class UploadResponse(BaseModel):
    """Response model for a simple (server-relayed) upload."""

    success: bool = True
    file_name: str
    file_path: str
    size_bytes: int
    storage_backend: str
    web_url: Optional[str] = None
