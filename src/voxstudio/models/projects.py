"""Project, feedback and voice API models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CreateProjectRequest(BaseModel):
    project_name: str


class Project(BaseModel):
    id: str
    name: str
    created_at: datetime


class ProjectFile(BaseModel):
    name: str
    size: int
    web_url: Optional[str] = None
    mime_type: Optional[str] = None


class DeleteFileRequest(BaseModel):
    category: str
    name: str


class StatusUpdateRequest(BaseModel):
    stages: List[Dict[str, Any]]


class VoiceFolderRequest(BaseModel):
    voice_title: str


class CopyVoiceRequest(BaseModel):
    voice_title: str = Field(..., min_length=1)
    source_file_name: str = Field(..., min_length=1)


class FinalVideo(BaseModel):
    name: str
    size: int
    url: str
    web_url: Optional[str] = None


class FeedbackComment(BaseModel):
    """One comment as exchanged with the review UI."""

    id: Optional[str] = None
    timestamp: int = Field(..., ge=0, description="Position in seconds")
    comment: str = Field(..., min_length=1)
    resolved: bool = False


class SubmitFeedbackRequest(BaseModel):
    voice_title: str
    feedback: List[FeedbackComment] = Field(..., min_length=1)


class VoiceRequest(BaseModel):
    """Voice metadata submitted by the review UI."""

    title: str
    type: str = "custom"
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    audio_url: Optional[str] = None
    project_id: Optional[str] = None
    stage_id: Optional[str] = None
    is_ai_voice: bool = False
