"""Folder Path Resolver: get-or-create a nested destination folder."""

import logging
from typing import Optional, Sequence

from voxstudio.core.exceptions import ConflictError, NotFoundError, StoreError
from voxstudio.storage.base import DocumentStore, DriveItem
from voxstudio.upload.models import ConflictPolicy, FolderHandle, validate_segments

logger = logging.getLogger(__name__)


class FolderPathResolver:
    """Ensure every folder of a path exists, returning a handle to the deepest.

    Each segment is looked up before it is created, so resolving the same
    path twice never creates duplicates. A create that loses a race to a
    concurrent caller (conflict) is resolved by looking the segment up again.
    Any other failure is terminal and is not retried.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def resolve(self, segments: Sequence[str]) -> FolderHandle:
        """Resolve a path of folder names under the library root.

        Args:
            segments: Ordered folder names, e.g. ("acme", "stage1", "videos")

        Returns:
            Handle to the last segment

        Raises:
            UploadValidationError: If the path is empty or a segment is invalid
            StoreError: If a segment can be neither found nor created
        """
        segments = validate_segments(segments)

        parent: Optional[FolderHandle] = None
        for segment in segments:
            item = await self._get_or_create(parent, segment)
            if not item.is_folder:
                raise StoreError(
                    f"'{item.path or segment}' exists and is not a folder",
                    status_code=409,
                    detail="nameAlreadyExists",
                )
            parent = item.as_handle()

        logger.debug("Folder path resolved", extra={"folder_path": parent.path, "item_id": parent.item_id})
        return parent

    async def _get_or_create(self, parent: Optional[FolderHandle], segment: str) -> DriveItem:
        try:
            return await self.store.get_child(parent, segment)
        except NotFoundError:
            pass

        try:
            return await self.store.create_folder(parent, segment, ConflictPolicy.FAIL)
        except ConflictError:
            logger.info(
                "Folder created concurrently, resolving existing",
                extra={"segment": segment, "parent": parent.path if parent else ""},
            )
            return await self.store.get_child(parent, segment)
