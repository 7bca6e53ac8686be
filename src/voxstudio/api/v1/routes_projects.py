"""Project API routes."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from voxstudio.core.exceptions import NotFoundError, StoreError, UploadValidationError
from voxstudio.feedback.report import FeedbackItem
from voxstudio.feedback.service import load_latest_feedback, submit_feedback
from voxstudio.models.projects import (
    CopyVoiceRequest,
    CreateProjectRequest,
    DeleteFileRequest,
    FeedbackComment,
    FinalVideo,
    Project,
    ProjectFile,
    StatusUpdateRequest,
    SubmitFeedbackRequest,
    VoiceFolderRequest,
)
from voxstudio.projects import service as projects

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])
logger = logging.getLogger(__name__)


def _raise_for(e: Exception, action: str) -> None:
    """Translate service errors into HTTP errors."""
    if isinstance(e, UploadValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail="Not found")
    if isinstance(e, ValueError):
        logger.error(f"Storage backend configuration error: {e}")
        raise HTTPException(status_code=500, detail="Storage configuration error")
    if isinstance(e, StoreError):
        logger.error(f"Failed to {action}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to {action}")
    logger.error(f"Unexpected error while trying to {action}: {e}", exc_info=True)
    raise HTTPException(status_code=500, detail="Internal server error")


@router.get("", response_model=Dict[str, List[Project]])
async def list_projects() -> Dict[str, List[Project]]:
    """List projects, newest first."""
    try:
        return {"projects": [Project(**p) for p in await projects.list_projects()]}
    except Exception as e:
        _raise_for(e, "list projects")


@router.post("", status_code=201)
async def create_project(request: CreateProjectRequest = Body(...)) -> Dict[str, Any]:
    """Create a project folder (idempotent)."""
    if not request.project_name or not request.project_name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")
    try:
        project = await projects.create_project(request.project_name.strip())
        return {"success": True, "project": Project(**project)}
    except Exception as e:
        _raise_for(e, "create project")


@router.get("/{project_name}/files")
async def list_project_files(project_name: str) -> Dict[str, Any]:
    """List files per stage category."""
    try:
        files = await projects.list_project_files(project_name)
        return {
            "success": True,
            "files": {key: [ProjectFile(**f) for f in items] for key, items in files.items()},
        }
    except Exception as e:
        _raise_for(e, "list project files")


@router.post("/{project_name}/files/delete")
async def delete_project_file(project_name: str, request: DeleteFileRequest = Body(...)) -> Dict[str, Any]:
    """Delete a file by category and name."""
    try:
        await projects.delete_project_file(project_name, request.category, request.name)
        return {"success": True}
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    except Exception as e:
        _raise_for(e, "delete file")


@router.get("/{project_name}/status")
async def get_project_status(project_name: str) -> Dict[str, Any]:
    try:
        return {"success": True, "stages": await projects.get_project_status(project_name)}
    except Exception as e:
        _raise_for(e, "read project status")


@router.put("/{project_name}/status")
async def save_project_status(project_name: str, request: StatusUpdateRequest = Body(...)) -> Dict[str, Any]:
    try:
        await projects.save_project_status(project_name, request.stages)
        return {"success": True}
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    except Exception as e:
        _raise_for(e, "write project status")


@router.post("/{project_name}/voices", status_code=201)
async def create_voice_folder(project_name: str, request: VoiceFolderRequest = Body(...)) -> Dict[str, Any]:
    """Create the stage 3 folder for a voice."""
    try:
        folder = await projects.create_voice_folder(project_name, request.voice_title)
        return {"success": True, "folder": folder}
    except Exception as e:
        _raise_for(e, "create voice folder")


@router.post("/{project_name}/stage3/copy-voice", status_code=201)
async def copy_voice_to_stage3(project_name: str, request: CopyVoiceRequest = Body(...)) -> Dict[str, Any]:
    """Copy a stage 2 voice file into the voice's stage 3 folder."""
    try:
        copied = await projects.copy_voice_to_stage3(project_name, request.voice_title, request.source_file_name)
        return {"success": True, "path": copied["path"], "size": copied["size"]}
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Source file not found")
    except Exception as e:
        _raise_for(e, "copy voice")


@router.get("/{project_name}/final-videos")
async def list_final_videos(project_name: str) -> Dict[str, Any]:
    """List rendered stage 4 videos with proxy URLs."""
    try:
        videos = await projects.list_final_videos(project_name)
        return {"success": True, "videos": [FinalVideo(**v) for v in videos]}
    except Exception as e:
        _raise_for(e, "list final videos")


@router.get("/{project_name}/feedback")
async def get_feedback(project_name: str, voice_title: Optional[str] = Query(None)) -> Dict[str, Any]:
    """Load the latest feedback report for a project or voice."""
    try:
        items = await load_latest_feedback(project_name, voice_title=voice_title)
    except Exception as e:
        _raise_for(e, "load feedback")

    return {
        "success": True,
        "feedback": [
            FeedbackComment(id=item.id, timestamp=item.timestamp_seconds, comment=item.comment, resolved=item.resolved)
            for item in items
        ],
    }


@router.post("/{project_name}/feedback", status_code=201)
async def post_feedback(project_name: str, request: SubmitFeedbackRequest = Body(...)) -> Dict[str, Any]:
    """Store a new feedback report."""
    try:
        result = await submit_feedback(
            project_name,
            request.voice_title,
            [FeedbackItem(timestamp_seconds=c.timestamp, comment=c.comment, resolved=c.resolved) for c in request.feedback],
        )
        return {"success": True, **result}
    except Exception as e:
        _raise_for(e, "submit feedback")
