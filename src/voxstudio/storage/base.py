"""Abstract document store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from voxstudio.upload.models import ConflictPolicy, FolderHandle, ResumableSession


@dataclass
class DriveItem:
    """Item descriptor returned by a document store."""

    id: str
    name: str
    is_folder: bool
    path: str = ""
    size: int = 0
    web_url: Optional[str] = None
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None

    def as_handle(self) -> FolderHandle:
        return FolderHandle(item_id=self.id, path=self.path)


class DocumentStore(ABC):
    """Abstract base class for remote document libraries.

    A ``parent`` of ``None`` always means the library root. Lookups raise
    ``NotFoundError``; creates that collide raise ``ConflictError``.
    """

    @abstractmethod
    async def get_item(self, path: str) -> DriveItem:
        """Look up an item by its root-relative path.

        Args:
            path: Slash-separated path under the library root

        Returns:
            Item descriptor

        Raises:
            NotFoundError: If nothing exists at the path
        """
        pass

    @abstractmethod
    async def get_child(self, parent: Optional[FolderHandle], name: str) -> DriveItem:
        """Look up a direct child of a folder by name."""
        pass

    @abstractmethod
    async def create_folder(
        self,
        parent: Optional[FolderHandle],
        name: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
    ) -> DriveItem:
        """Create a folder under a parent.

        Raises:
            ConflictError: If the name is taken and the policy is ``fail``
        """
        pass

    @abstractmethod
    async def create_upload_session(
        self,
        parent: FolderHandle,
        file_name: str,
        conflict_policy: ConflictPolicy,
        file_size: Optional[int] = None,
    ) -> ResumableSession:
        """Open a resumable upload target for a file under a folder."""
        pass

    @abstractmethod
    async def list_children(self, path: str) -> list[DriveItem]:
        """List the direct children of the folder at a path."""
        pass

    @abstractmethod
    async def read_file(self, path: str) -> bytes:
        """Download the content of the file at a path."""
        pass

    @abstractmethod
    async def write_file(self, path: str, data: bytes) -> DriveItem:
        """Write small content to a path in a single request, replacing it."""
        pass

    @abstractmethod
    async def delete_item(self, item_id: str) -> None:
        """Delete an item by id."""
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    def upload_transport(self) -> Optional[httpx.AsyncBaseTransport]:
        """Transport for chunk PUTs to this backend's upload URLs; None means the network."""
        return None

    async def cancel_upload_session(self, session: ResumableSession) -> None:
        """Abandon an unfinished session so the store drops its partial bytes."""
        return None

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
        return None
