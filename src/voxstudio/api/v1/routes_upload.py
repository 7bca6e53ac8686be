"""Upload API routes."""

import logging
import mimetypes

from fastapi import APIRouter, Body, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from voxstudio.core.config import settings
from voxstudio.core.exceptions import NotFoundError, StoreError, UploadValidationError
from voxstudio.models.upload import CreateSessionRequest, CreateSessionResponse, UploadResponse
from voxstudio.projects.service import categorize_upload
from voxstudio.storage.factory import get_document_store
from voxstudio.storage.local import handle_chunk, upload_session_registry
from voxstudio.upload.service import create_upload_session, upload_file

router = APIRouter(prefix="/api/v1", tags=["upload"])
logger = logging.getLogger(__name__)


@router.post("/upload/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(request: CreateSessionRequest = Body(...)) -> CreateSessionResponse:
    """Open a resumable upload session; the client then PUTs chunks to ``upload_url``."""
    try:
        if not request.project_name.strip() or not request.file_name.strip():
            raise HTTPException(status_code=400, detail="project_name and file_name are required")

        session = await create_upload_session(
            project_name=request.project_name.strip(),
            stage=request.stage,
            file_name=request.file_name,
            file_size=request.file_size,
            category=request.category,
            conflict_policy=request.conflict_policy,
        )

        logger.info(
            f"Upload session created: project={request.project_name}, stage={request.stage}, "
            f"file={request.file_name}, size={request.file_size}"
        )
        return CreateSessionResponse(
            upload_url=session.upload_url,
            expires_at=session.expires_at,
            chunk_size=settings.upload_chunk_size_bytes,
        )

    except HTTPException:
        raise
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        logger.error(f"Storage backend configuration error: {e}")
        raise HTTPException(status_code=500, detail="Storage configuration error")
    except StoreError as e:
        logger.error(f"Failed to create upload session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to create upload session: {e}")
    except Exception as e:
        logger.error(f"Unexpected error during session creation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/upload/sessions/{session_id}")
async def receive_chunk(session_id: str, request: Request) -> JSONResponse:
    """Chunk target for upload sessions opened on the local document store."""
    body = await request.body()
    status_code, payload = handle_chunk(
        upload_session_registry, session_id, request.headers.get("content-range"), body
    )
    if status_code >= 400:
        logger.warning(
            f"Chunk rejected: session_id={session_id}, status={status_code}",
            extra={"session_id": session_id, "http_status": status_code},
        )
    return JSONResponse(payload, status_code=status_code)


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_project_file(
    file: UploadFile = File(...),
    project_name: str = Form(...),
    stage: str | None = Form(None),
    folder_name: str | None = Form(None),
) -> UploadResponse:
    """Relay a file into the project through the chunked pipeline."""
    try:
        if not project_name or not project_name.strip():
            raise HTTPException(status_code=400, detail="No project specified")

        file.file.seek(0, 2)
        size_bytes = file.file.tell()
        file.file.seek(0)
        if size_bytes == 0:
            raise HTTPException(status_code=400, detail="No file uploaded")

        file_name = file.filename or "unnamed"
        destination = [
            project_name.strip(),
            *categorize_upload(file.content_type or "", stage=stage or None, folder_name=folder_name or None),
        ]

        store = get_document_store()
        result = await upload_file(destination, file_name, file, size_bytes, store=store)

        file_path = "/".join([*destination, result.get("name") or file_name])
        logger.info(
            f"Upload completed: path={file_path}, backend={store.get_backend_name()}, size={size_bytes}"
        )
        return UploadResponse(
            file_name=result.get("name") or file_name,
            file_path=file_path,
            size_bytes=size_bytes,
            storage_backend=store.get_backend_name(),
            web_url=result.get("webUrl"),
        )

    except HTTPException:
        raise
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        logger.error(f"Storage backend configuration error: {e}")
        raise HTTPException(status_code=500, detail="Storage configuration error")
    except StoreError as e:
        logger.error(f"Failed to store file: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to upload file: {e}")
    except Exception as e:
        logger.error(f"Unexpected error during upload: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/files/{path:path}")
async def download_file(path: str) -> Response:
    """Proxy file content from the document library for playback."""
    try:
        content = await get_document_store().read_file(path)
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    except ValueError as e:
        logger.error(f"Storage backend configuration error: {e}")
        raise HTTPException(status_code=500, detail="Storage configuration error")
    except StoreError as e:
        logger.error(f"Failed to read file: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to read file")

    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=content, media_type=media_type)
