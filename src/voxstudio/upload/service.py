"""Caller-facing chunked upload operations."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import httpx

from voxstudio.core.best_effort import best_effort
from voxstudio.core.config import settings
from voxstudio.core.exceptions import UploadValidationError
from voxstudio.core.logging import upload_destination_context
from voxstudio.storage.base import DocumentStore
from voxstudio.storage.factory import get_document_store
from voxstudio.upload.chunks import ChunkSequencer, ProgressCallback
from voxstudio.upload.folders import FolderPathResolver
from voxstudio.upload.models import ConflictPolicy, ResumableSession, UploadTarget
from voxstudio.upload.sessions import UploadSessionNegotiator

logger = logging.getLogger(__name__)


def _build_target(destination_path: Sequence[str], file_name: str, total_size: int) -> UploadTarget:
    target = UploadTarget(tuple(destination_path), file_name, total_size)
    if total_size > settings.max_upload_bytes:
        raise UploadValidationError(
            f"File size exceeds maximum allowed size of {settings.MAX_UPLOAD_MB}MB"
        )
    return target


async def open_upload_session(
    target: UploadTarget,
    conflict_policy: Optional[ConflictPolicy] = None,
    store: Optional[DocumentStore] = None,
) -> ResumableSession:
    """Ensure the destination folders exist and open a session for the target."""
    store = store or get_document_store()
    policy = ConflictPolicy(conflict_policy or settings.DEFAULT_CONFLICT_POLICY)

    token = upload_destination_context.set(target.item_path)
    try:
        folder = await FolderPathResolver(store).resolve(target.destination_path)
        return await UploadSessionNegotiator(store).open(
            folder, target.file_name, conflict_policy=policy, total_size=target.total_size
        )
    finally:
        upload_destination_context.reset(token)


async def create_upload_session(
    project_name: str,
    stage: str,
    file_name: str,
    file_size: int,
    category: str = "videos",
    conflict_policy: Optional[ConflictPolicy] = None,
    store: Optional[DocumentStore] = None,
) -> ResumableSession:
    """Open a resumable session for ``{project}/{stage}/{category}/{file_name}``.

    Raises:
        UploadValidationError: If any name is invalid or the size is out of range
        StoreError: If the folders cannot be resolved or the store rejects the session
    """
    target = _build_target((project_name, stage, category), file_name, file_size)
    return await open_upload_session(target, conflict_policy=conflict_policy, store=store)


@asynccontextmanager
async def _chunk_client(
    http_client: Optional[httpx.AsyncClient],
    transport: Optional[httpx.AsyncBaseTransport],
) -> AsyncIterator[httpx.AsyncClient]:
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=settings.GRAPH_REQUEST_TIMEOUT, transport=transport) as client:
        yield client


async def upload_chunks(
    upload_url: str,
    source: Any,
    total_size: int,
    on_progress: Optional[ProgressCallback] = None,
    expires_at: Optional[datetime] = None,
    chunk_size: Optional[int] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Stream ``source`` to an open upload URL in ordered chunks.

    The upload URL is pre-authorized; no credentials are sent with chunks.
    """
    if not upload_url:
        raise UploadValidationError("upload_url is required")

    session = ResumableSession(upload_url=upload_url, expires_at=expires_at)
    async with _chunk_client(http_client, transport) as client:
        return await ChunkSequencer(client, chunk_size=chunk_size).transmit(
            session, source, total_size, on_progress
        )


async def upload_file(
    destination_path: Sequence[str],
    file_name: str,
    source: Any,
    total_size: int,
    conflict_policy: Optional[ConflictPolicy] = None,
    on_progress: Optional[ProgressCallback] = None,
    store: Optional[DocumentStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Resolve folders, open a fresh session and transmit the whole file.

    A failure at any step fails the whole upload; calling again starts over
    with a new session. A session whose transmission failed is cancelled so
    the store does not keep the partial bytes.
    """
    target = _build_target(destination_path, file_name, total_size)
    store = store or get_document_store()

    token = upload_destination_context.set(target.item_path)
    try:
        async with _chunk_client(http_client, store.upload_transport()) as client:
            sequencer = ChunkSequencer(client, chunk_size=chunk_size)
            sequencer.request_session()
            try:
                session = await open_upload_session(target, conflict_policy=conflict_policy, store=store)
            except BaseException:
                sequencer.fail()
                raise

            try:
                result = await sequencer.transmit(session, source, target.total_size, on_progress)
            except Exception:
                await best_effort(
                    store.cancel_upload_session(session),
                    operation="upload_session_cancel",
                    item_path=target.item_path,
                )
                raise

        logger.info(
            "File uploaded",
            extra={"item_path": target.item_path, "size_bytes": target.total_size},
        )
        return result
    finally:
        upload_destination_context.reset(token)
