"""Project folders, per-stage file listings and stage status."""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from voxstudio.core.best_effort import best_effort
from voxstudio.core.exceptions import NotFoundError, UploadValidationError
from voxstudio.storage.base import DocumentStore, DriveItem
from voxstudio.storage.factory import get_document_store
from voxstudio.upload.folders import FolderPathResolver
from voxstudio.upload.models import ConflictPolicy, validate_segment, validate_segments
from voxstudio.upload.service import upload_file

logger = logging.getLogger(__name__)

STAGE_CATEGORIES: Dict[str, List[str]] = {
    "stage1": ["videos", "documents", "voices"],
    "stage2": ["documents", "voices", "scripts"],
    "stage3": ["feedback", "voices"],
    "stage4": ["videos"],
}
LEGACY_CATEGORIES = ["videos", "voices", "documents", "voice-feedback", "AI-voices"]

STATUS_FILE = "status.json"
FINAL_VIDEOS_FOLDER = "stage4/final-videos"
VIDEO_EXTENSIONS = frozenset([".mp4", ".webm", ".mov", ".avi", ".mkv"])

DOCUMENT_MIME_TYPES = frozenset(
    [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/rtf",
        "text/rtf",
    ]
)

_UNSAFE_FOLDER_CHARS = re.compile(r'[\\/:*?"<>|#%&{}~]')

DEFAULT_STAGES: List[Dict[str, Any]] = [
    {
        "id": 1,
        "title": "Stage 1: Original Video Campaign",
        "description": "Upload and process the original video",
        "status": "in_progress",
        "steps": [
            {"title": "Original Video Campaign", "component": "VideoUpload", "status": "in_progress"},
            {"title": "Auditioning Brief", "component": "AuditioningBrief", "status": "pending"},
            {"title": "Voice Selection", "component": "VoiceSelection", "status": "pending"},
        ],
    },
    {
        "id": 2,
        "title": "Stage 2: Script & Timestamps",
        "description": "Define script and set timestamps",
        "status": "pending",
        "steps": [
            {"title": "Script Upload", "component": "ScriptUpload", "status": "pending"},
            {"title": "Timestamp Editor", "component": "TimestampEditor", "status": "pending"},
        ],
    },
    {
        "id": 3,
        "title": "Stage 3: Voice Selection",
        "description": "Review and select voice options",
        "status": "pending",
        "steps": [
            {"title": "Base Voice Selection", "component": "BaseVoiceSelection", "status": "pending"},
            {"title": "Custom Voice Selection", "component": "CustomVoiceSelection", "status": "pending"},
        ],
    },
    {
        "id": 4,
        "title": "Stage 4: Final Review",
        "description": "Choose and approve the final voice",
        "status": "pending",
        "steps": [
            {"title": "Final Voice Review", "component": "FinalVoiceReview", "status": "pending"},
        ],
    },
]


def _project_dict(item: DriveItem) -> Dict[str, Any]:
    created_at = item.created_at or datetime.now(timezone.utc)
    return {"id": item.name, "name": item.name, "created_at": created_at}


def _file_dict(item: DriveItem) -> Dict[str, Any]:
    return {"name": item.name, "size": item.size, "web_url": item.web_url, "mime_type": item.mime_type}


def sanitize_folder_name(title: str) -> str:
    """Replace characters the document library rejects in folder names."""
    return _UNSAFE_FOLDER_CHARS.sub("_", str(title)).strip()


def categorize_upload(content_type: str, stage: Optional[str] = None, folder_name: Optional[str] = None) -> List[str]:
    """Pick the sub-path for a simple upload below the project folder.

    An explicit folder name wins; otherwise the content type decides between
    voices, videos and documents.

    Raises:
        UploadValidationError: If the content type is not accepted
    """
    content_type = (content_type or "").lower()
    is_document = content_type.startswith("text/") or content_type in DOCUMENT_MIME_TYPES
    if not (content_type.startswith(("video/", "audio/")) or is_document):
        raise UploadValidationError(
            f"Invalid file type: {content_type or 'unknown'}. "
            "Only video, text, audio, and common document files are allowed"
        )

    path = [stage] if stage else []
    if folder_name:
        path.append(folder_name)
    elif content_type.startswith("audio/"):
        path.append("voices")
    elif content_type.startswith("video/"):
        path.append("videos")
    else:
        path.append("documents")
    return path


async def list_projects(store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    """List project folders at the library root, newest first."""
    store = store or get_document_store()
    try:
        children = await store.list_children("")
    except NotFoundError:
        return []

    projects = [_project_dict(item) for item in children if item.is_folder]
    projects.sort(key=lambda project: project["created_at"], reverse=True)
    return projects


async def create_project(project_name: str, store: Optional[DocumentStore] = None) -> Dict[str, Any]:
    """Create a project folder, or return the existing one."""
    store = store or get_document_store()
    validate_segment(project_name)

    try:
        existing = await store.get_item(project_name)
        if existing.is_folder:
            logger.info("Project already exists", extra={"project_name": project_name})
            return _project_dict(existing)
    except NotFoundError:
        pass

    handle = await FolderPathResolver(store).resolve([project_name])
    logger.info("Project created", extra={"project_name": project_name, "item_id": handle.item_id})

    await best_effort(
        lambda: save_project_status(project_name, DEFAULT_STAGES, store=store),
        operation="project_status_seed",
        project_name=project_name,
    )
    # The library can lag before a new folder is listed; reading it back warms it up
    created = await best_effort(
        store.get_item(project_name), operation="project_read_back", project_name=project_name
    )
    if created is not None:
        return _project_dict(created)
    return {"id": project_name, "name": project_name, "created_at": datetime.now(timezone.utc)}


async def _list_files(store: DocumentStore, path: str) -> List[Dict[str, Any]]:
    try:
        children = await store.list_children(path)
    except NotFoundError:
        return []
    return [_file_dict(item) for item in children if not item.is_folder]


async def list_project_files(project_name: str, store: Optional[DocumentStore] = None) -> Dict[str, List[Dict[str, Any]]]:
    """List files per category, keyed ``{stage}_{category}`` plus legacy keys.

    Folders that do not exist yet list as empty.
    """
    store = store or get_document_store()
    validate_segment(project_name)

    result: Dict[str, List[Dict[str, Any]]] = {}
    for stage, categories in STAGE_CATEGORIES.items():
        for category in categories:
            result[f"{stage}_{category}"] = await _list_files(store, f"{project_name}/{stage}/{category}")

    for category in LEGACY_CATEGORIES:
        result[category] = await _list_files(store, f"{project_name}/{category}")

    return result


async def delete_project_file(
    project_name: str,
    category: str,
    name: str,
    store: Optional[DocumentStore] = None,
) -> None:
    """Delete a file located by path. ``category`` may include the stage, e.g. ``stage1/videos``.

    Raises:
        NotFoundError: If no file exists at the path
    """
    store = store or get_document_store()
    segments = validate_segments([project_name, *category.strip("/").split("/"), name])
    item = await store.get_item("/".join(segments))
    if item.is_folder:
        raise UploadValidationError(f"{item.path} is a folder")
    await store.delete_item(item.id)
    logger.info("Project file deleted", extra={"item_path": item.path})


async def get_project_status(project_name: str, store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    """Read stage status from ``status.json``; the default template if absent or unreadable."""
    store = store or get_document_store()
    validate_segment(project_name)

    try:
        raw = await store.read_file(f"{project_name}/{STATUS_FILE}")
        data = json.loads(raw)
    except NotFoundError:
        return DEFAULT_STAGES
    except ValueError as e:
        logger.warning("Unreadable project status, using defaults", extra={"project_name": project_name, "error": str(e)})
        return DEFAULT_STAGES

    if isinstance(data, dict):
        return data.get("stages") or DEFAULT_STAGES
    return data


async def save_project_status(
    project_name: str,
    stages: List[Dict[str, Any]],
    store: Optional[DocumentStore] = None,
) -> None:
    """Write stage status to ``status.json`` in the project folder."""
    store = store or get_document_store()
    validate_segment(project_name)
    payload = json.dumps({"stages": stages}, indent=2).encode("utf-8")
    await store.write_file(f"{project_name}/{STATUS_FILE}", payload)


async def create_voice_folder(
    project_name: str,
    voice_title: str,
    store: Optional[DocumentStore] = None,
) -> str:
    """Ensure ``{project}/stage3/voices/{voice}`` exists; returns its path."""
    store = store or get_document_store()
    folder_name = sanitize_folder_name(voice_title)
    if not folder_name:
        raise UploadValidationError("Invalid voice_title")

    handle = await FolderPathResolver(store).resolve([project_name, "stage3", "voices", folder_name])
    return handle.path or f"{project_name}/stage3/voices/{folder_name}"


async def copy_voice_to_stage3(
    project_name: str,
    voice_title: str,
    source_file_name: str,
    store: Optional[DocumentStore] = None,
) -> Dict[str, Any]:
    """Copy a stage 2 voice file into the voice's stage 3 folder.

    Reads ``{project}/stage2/voices/{file}`` and uploads it to
    ``{project}/stage3/voices/{voice}/{file}``, replacing an earlier copy.

    Raises:
        UploadValidationError: If a name is invalid or the source file is empty
        NotFoundError: If the source file does not exist
    """
    store = store or get_document_store()
    validate_segments([project_name, source_file_name])
    folder_name = sanitize_folder_name(voice_title)
    if not folder_name:
        raise UploadValidationError("Invalid voice_title")

    content = await store.read_file(f"{project_name}/stage2/voices/{source_file_name}")
    destination = [project_name, "stage3", "voices", folder_name]
    result = await upload_file(
        destination,
        source_file_name,
        content,
        len(content),
        conflict_policy=ConflictPolicy.REPLACE,
        store=store,
    )
    path = "/".join([*destination, source_file_name])
    logger.info("Voice copied to stage 3", extra={"item_path": path, "size_bytes": len(content)})
    return {"path": path, "size": len(content), "item": result}


async def list_final_videos(project_name: str, store: Optional[DocumentStore] = None) -> List[Dict[str, Any]]:
    """List the rendered videos in ``{project}/stage4/final-videos``.

    Each entry carries a ``url`` served through this service's file proxy.
    A missing folder lists as empty.
    """
    store = store or get_document_store()
    validate_segment(project_name)
    folder = f"{project_name}/{FINAL_VIDEOS_FOLDER}"

    try:
        children = await store.list_children(folder)
    except NotFoundError:
        return []

    videos = []
    for item in children:
        if item.is_folder or PurePosixPath(item.name).suffix.lower() not in VIDEO_EXTENSIONS:
            continue
        videos.append(
            {
                "name": item.name,
                "size": item.size,
                "web_url": item.web_url,
                "url": f"/api/v1/files/{quote(f'{folder}/{item.name}')}",
            }
        )
    return videos
