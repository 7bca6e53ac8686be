"""Upload Session Negotiator."""

import logging
from typing import Optional

from voxstudio.core.exceptions import StoreError, UploadValidationError
from voxstudio.storage.base import DocumentStore
from voxstudio.upload.models import ConflictPolicy, FolderHandle, ResumableSession, validate_segment

logger = logging.getLogger(__name__)


class UploadSessionNegotiator:
    """Open resumable upload targets scoped to a folder."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def open(
        self,
        folder: FolderHandle,
        file_name: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.REPLACE,
        total_size: Optional[int] = None,
    ) -> ResumableSession:
        """Ask the store for a resumable upload target.

        Store rejections (quota, invalid name) propagate unchanged; the
        caller decides whether to start over with a new session.
        """
        validate_segment(file_name)
        if total_size is not None and total_size <= 0:
            raise UploadValidationError("total_size must be a positive number of bytes")

        try:
            session = await self.store.create_upload_session(
                folder, file_name, ConflictPolicy(conflict_policy), total_size
            )
        except StoreError as e:
            logger.error(
                "Upload session rejected",
                extra={
                    "folder_path": folder.path,
                    "file_name": file_name,
                    "status_code": e.status_code,
                    "detail": e.detail,
                },
            )
            raise

        logger.info(
            "Upload session opened",
            extra={
                "folder_path": folder.path,
                "file_name": file_name,
                "size_bytes": total_size,
                "expires_at": session.expires_at,
            },
        )
        return session
